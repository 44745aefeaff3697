# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Installment schedule arithmetic.

Amounts are integers in the currency's minor unit. Percentage shares are
rounded half-up to the minor unit and the final installment takes the
remainder, so a schedule always adds up to the course price exactly.

Example:
    >>> plan = default_plan(count=3, interval_days=30)
    >>> [i.amount_minor for i in build_schedule(30000, plan, start)]
    [10000, 10000, 10000]
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Sequence

from src.domains.exceptions import ValidationError
from src.models.common import AmountType, InstallmentStatus

MAX_INSTALLMENTS = 12
SHARE_QUANTUM = Decimal("0.0001")
ONE_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class PlanEntry:
    """One line of an installment plan.

    Attributes:
        name: Display name, e.g. "Installment 1".
        amount_type: Whether amount is a percentage or a currency amount.
        amount: Percentage of the price, or amount in major currency units.
        due_offset_days: Days after the schedule start the installment is due.
    """

    name: str
    amount_type: AmountType
    amount: Decimal
    due_offset_days: int


@dataclass(frozen=True)
class ScheduledInstallment:
    """A computed installment ready to be stored."""

    sequence: int
    name: str
    amount_type: AmountType
    share: Decimal
    amount_minor: int
    due_date: datetime
    status: InstallmentStatus


def to_minor(amount: Decimal, minor_digits: int) -> int:
    """Convert a major-unit amount to minor units.

    Raises:
        ValidationError: If the amount has more decimals than the currency.
    """
    try:
        scaled = Decimal(amount).scaleb(minor_digits)
    except InvalidOperation as e:
        raise ValidationError(f"Invalid amount: {amount}") from e

    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"Amount {amount} has more than {minor_digits} decimal places",
            details={"amount": str(amount)},
        )
    return int(scaled)


def from_minor(amount_minor: int, minor_digits: int) -> Decimal:
    """Convert minor units to a major-unit Decimal, e.g. 30000 -> 300.00."""
    return Decimal(amount_minor).scaleb(-minor_digits)


def default_plan(count: int, interval_days: int) -> list[PlanEntry]:
    """Equal percentage shares, the first due one interval after the start."""
    if not 1 <= count <= MAX_INSTALLMENTS:
        raise ValidationError(
            f"Installment count must be between 1 and {MAX_INSTALLMENTS}",
            details={"count": count},
        )

    share = ONE_HUNDRED / Decimal(count)
    return [
        PlanEntry(
            name=f"Installment {i}",
            amount_type=AmountType.PERCENTAGE,
            amount=share,
            due_offset_days=interval_days * i,
        )
        for i in range(1, count + 1)
    ]


def validate_plan(plan: Sequence[PlanEntry], price_minor: int, minor_digits: int) -> None:
    """Check a plan can produce a schedule for the given price.

    A plan has 1 to 12 entries of a single amount type with positive
    amounts. Fixed amounts must add up to the price, percentages to 100.

    Raises:
        ValidationError: On the first rule the plan breaks.
    """
    if not 1 <= len(plan) <= MAX_INSTALLMENTS:
        raise ValidationError(
            f"A plan needs between 1 and {MAX_INSTALLMENTS} installments",
            details={"count": len(plan)},
        )

    types = {AmountType(entry.amount_type) for entry in plan}
    if len(types) != 1:
        raise ValidationError("Installment plan mixes fixed and percentage amounts")

    for entry in plan:
        if entry.amount <= 0:
            raise ValidationError(
                "Installment amounts must be positive",
                details={"name": entry.name, "amount": str(entry.amount)},
            )
        if entry.due_offset_days < 0:
            raise ValidationError(
                "Installment due offsets cannot be negative",
                details={"name": entry.name},
            )

    (amount_type,) = types
    if amount_type == AmountType.FIXED:
        total = sum(to_minor(entry.amount, minor_digits) for entry in plan)
        if total != price_minor:
            raise ValidationError(
                "Fixed installment amounts must add up to the course price",
                details={
                    "total": str(from_minor(total, minor_digits)),
                    "price": str(from_minor(price_minor, minor_digits)),
                },
            )
    else:
        total_pct = sum((Decimal(entry.amount) for entry in plan), Decimal(0))
        if total_pct != ONE_HUNDRED:
            raise ValidationError(
                "Installment percentages must add up to 100",
                details={"total": str(total_pct)},
            )


def _raw_amounts(
    price_minor: int,
    plan: Sequence[PlanEntry],
    minor_digits: int,
    rounding: str,
) -> list[int]:
    amounts = []
    for entry in plan:
        if AmountType(entry.amount_type) == AmountType.FIXED:
            amounts.append(to_minor(entry.amount, minor_digits))
        else:
            exact = Decimal(price_minor) * Decimal(entry.amount) / ONE_HUNDRED
            amounts.append(int(exact.quantize(Decimal(1), rounding=rounding)))
    return amounts


def build_schedule(
    price_minor: int,
    plan: Sequence[PlanEntry],
    start: datetime,
    minor_digits: int = 2,
    now: datetime | None = None,
) -> list[ScheduledInstallment]:
    """Compute the installments for a price.

    Args:
        price_minor: Course price in minor units.
        plan: Plan entries in installment order.
        start: Schedule start (the approval time); due dates are offsets from it.
        minor_digits: Decimal digits of the currency's minor unit.
        now: Reference time for the initial status, defaults to start.

    Returns:
        Installments numbered from 1. Those already due start Unpaid,
        the rest Pending.

    Raises:
        ValidationError: If the plan is empty, the price is negative, or
            the non-final installments alone exceed the price.
    """
    if not plan:
        raise ValidationError("Installment plan is empty")
    if price_minor < 0:
        raise ValidationError("Course price cannot be negative", details={"price_minor": price_minor})

    amounts = _raw_amounts(price_minor, plan, minor_digits, ROUND_HALF_UP)
    if sum(amounts[:-1]) > price_minor:
        # Tiny prices: half-up shares can overshoot, round them down instead
        amounts = _raw_amounts(price_minor, plan, minor_digits, ROUND_DOWN)
    if sum(amounts[:-1]) > price_minor:
        raise ValidationError(
            "Installment plan exceeds the course price",
            details={"price_minor": price_minor},
        )
    amounts[-1] = price_minor - sum(amounts[:-1])

    reference = now or start
    schedule = []
    for sequence, (entry, amount_minor) in enumerate(zip(plan, amounts), start=1):
        due_date = start + timedelta(days=entry.due_offset_days)
        amount_type = AmountType(entry.amount_type)
        if amount_type == AmountType.PERCENTAGE:
            share = Decimal(entry.amount).quantize(SHARE_QUANTUM, rounding=ROUND_HALF_UP)
        else:
            share = Decimal(entry.amount)
        schedule.append(
            ScheduledInstallment(
                sequence=sequence,
                name=entry.name,
                amount_type=amount_type,
                share=share,
                amount_minor=amount_minor,
                due_date=due_date,
                status=InstallmentStatus.UNPAID if due_date <= reference else InstallmentStatus.PENDING,
            )
        )
    return schedule
