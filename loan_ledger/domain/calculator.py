"""Loan term calculation - interest, total repayable and flat installment"""

from datetime import date
from decimal import Decimal

from loan_ledger.domain.exceptions import ValidationError
from loan_ledger.domain.models import DurationUnit, InterestType, LoanDuration, LoanTerms
from loan_ledger.domain.money import to_money
from loan_ledger.utils.date_utils import add_months, add_weeks

WEEKS_PER_YEAR = Decimal(52)
MONTHS_PER_YEAR = Decimal(12)


def _validate_inputs(
    principal: Decimal,
    interest_rate: Decimal,
    interest_type: InterestType,
    duration: LoanDuration,
) -> None:
    for name, value in (("Principal", principal), ("Interest rate", interest_rate)):
        if value is not None and not Decimal(value).is_finite():
            raise ValidationError(f"{name} must be a finite number")
    if principal is None or principal <= 0:
        raise ValidationError("Principal must be greater than zero")
    if interest_rate is None or interest_rate < 0:
        raise ValidationError("Interest rate cannot be negative")
    if duration is None or duration.value <= 0:
        raise ValidationError("Duration must be at least one period")
    try:
        InterestType(interest_type)
        DurationUnit(duration.unit)
    except ValueError as e:
        raise ValidationError(str(e)) from e


def years_in(duration: LoanDuration) -> Decimal:
    """Fraction of a year covered by the duration"""
    if DurationUnit(duration.unit) == DurationUnit.WEEKS:
        return Decimal(duration.value) / WEEKS_PER_YEAR
    return Decimal(duration.value) / MONTHS_PER_YEAR


def calculate_loan_terms(
    principal: Decimal,
    interest_rate: Decimal,
    interest_type: InterestType,
    duration: LoanDuration,
) -> LoanTerms:
    """
    Compute total interest, total repayable amount and the flat installment.

    Rules:
    - simple: interest = principal * rate/100, independent of duration
    - annual: interest = principal * rate/100 * years, where years is
      weeks/52 or months/12
    - installment = total_amount / duration.value (one per week or month,
      equal and flat, not an amortizing annuity)

    Interest is rounded half-up to cents first, so total_amount is exactly
    principal + total_interest.

    Example:
        1200 at 12% annual over 6 months
        → interest 72.00, total 1272.00, installment 212.00
    """
    _validate_inputs(principal, interest_rate, interest_type, duration)

    principal = Decimal(principal)
    rate = Decimal(interest_rate) / 100

    if InterestType(interest_type) == InterestType.SIMPLE:
        raw_interest = principal * rate
    else:
        raw_interest = principal * rate * years_in(duration)

    total_interest = to_money(raw_interest)
    total_amount = to_money(principal) + total_interest
    installment_amount = to_money(total_amount / Decimal(duration.value))

    return LoanTerms(
        total_interest=total_interest,
        total_amount=total_amount,
        installment_amount=installment_amount,
    )


def period_due_date(start_date: date, unit: DurationUnit, periods: int) -> date:
    """Date `periods` weeks or calendar months after start_date"""
    if DurationUnit(unit) == DurationUnit.WEEKS:
        return add_weeks(start_date, periods)
    return add_months(start_date, periods)


def calculate_due_date(start_date: date, duration: LoanDuration) -> date:
    """Final due date: start + duration (months clamp to the last valid day)"""
    if duration.value <= 0:
        raise ValidationError("Duration must be at least one period")
    return period_due_date(start_date, duration.unit, duration.value)
