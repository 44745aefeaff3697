"""CourseFlow Backend.

Course enrollment workflow service: enrollment requests, class assignment
and tuition installment tracking.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
