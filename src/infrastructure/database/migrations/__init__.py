# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database migrations package.

Migrations are plain alembic-operation modules under versions/ executed by
the programmatic runner in runner.py; no alembic CLI environment is needed.
"""
