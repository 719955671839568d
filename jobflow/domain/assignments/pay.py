"""
Employee pay rules. All money is integer cents, rounded half-up.

    hourly      rate × hours, hours rounded up to HOURLY_ROUNDING_STEP (min one step once started)
    per_job     the employee's flat job rate, independent of time
    flat_rate   same as per_job
    percentage  pay_rate% of the appointment price
"""

from datetime import datetime
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Optional, Union

from ...config import HOURLY_ROUNDING_STEP
from ...models import Appointment, BusinessEmployee

Number = Union[int, float, Decimal]


def round_cents(value: Number) -> int:
    """Round an amount in cents half-up to a whole cent"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def elapsed_hours(started_at: Optional[datetime], now: datetime) -> float:
    if not started_at:
        return 0.0
    return max(0.0, (now - started_at).total_seconds() / 3600)


def round_hours_up(hours: Optional[Number], step: Number = HOURLY_ROUNDING_STEP) -> float:
    """Round worked hours up to the billing step; any positive time bills at least one step"""
    if not hours or hours <= 0:
        return 0.0
    step = Decimal(str(step))
    steps = (Decimal(str(hours)) / step).to_integral_value(rounding=ROUND_CEILING)
    return float(max(steps, Decimal(1)) * step)


def compute_pay(
    pay_type: str,
    employee: Optional[BusinessEmployee],
    appointment: Optional[Appointment],
    hours: float,
    fallback: int = 0,
) -> int:
    """
    Final pay in cents for a completed job.

    Args:
        pay_type: flat_rate, per_job, hourly or percentage
        employee: Employee whose rates apply (None for owner self-assignments)
        appointment: Job being paid (its price drives percentage pay)
        hours: Billable hours, already rounded for hourly pay
        fallback: Amount agreed at assignment time, used when the employee
            has no rate configured for this pay type

    Returns:
        Pay in cents
    """
    if pay_type == "hourly":
        rate = employee.default_hourly_rate if employee else None
        if rate is None:
            return fallback
        return round_cents(Decimal(str(rate)) * Decimal(str(hours)))

    if pay_type == "percentage":
        rate = employee.pay_rate if employee else None
        price = appointment.price if appointment else None
        if rate is None or price is None:
            return fallback
        return round_cents(Decimal(str(rate)) / 100 * Decimal(str(price)))

    # per_job / flat_rate
    if employee and employee.default_job_rate is not None:
        return employee.default_job_rate
    return fallback
