"""Flat repayment schedule generation for a loan"""

from datetime import date
from typing import List

from loan_ledger.domain.calculator import period_due_date
from loan_ledger.domain.models import Loan, ScheduleEntry, ScheduleStatus
from loan_ledger.domain.money import from_cents, to_cents


def _split_cents(total_cents: int, parts: int) -> List[int]:
    """Equal shares; the last share absorbs the remainder"""
    base = total_cents // parts
    remainder = total_cents % parts
    return [base + (remainder if i == parts - 1 else 0) for i in range(parts)]


def generate_repayment_schedule(loan: Loan, today: date) -> List[ScheduleEntry]:
    """
    Build the per-period schedule for a flat-installment loan.

    Requirements:
    - One installment per duration unit, due start + n weeks/months
    - Installments sum exactly to total_amount; principal portions sum
      exactly to principal (last installment absorbs the rounding remainder)
    - Status: paid when cumulative scheduled amount is covered by
      paid_amount, overdue when past due, otherwise pending

    Example:
        1000.00 over 3 months, no interest
        → [333.33, 333.33, 333.34]
    """
    periods = loan.duration.value
    if periods <= 0:
        return []

    emi_parts = _split_cents(to_cents(loan.total_amount), periods)
    principal_parts = _split_cents(to_cents(loan.principal), periods)
    paid_cents = to_cents(loan.paid_amount)

    schedule = []
    scheduled_cents = 0
    for i in range(periods):
        number = i + 1
        due_date = period_due_date(loan.start_date, loan.duration.unit, number)
        scheduled_cents += emi_parts[i]

        if scheduled_cents <= paid_cents:
            status = ScheduleStatus.PAID
        elif due_date < today:
            status = ScheduleStatus.OVERDUE
        else:
            status = ScheduleStatus.PENDING

        schedule.append(
            ScheduleEntry(
                installment_number=number,
                due_date=due_date,
                emi_amount=from_cents(emi_parts[i]),
                principal_amount=from_cents(principal_parts[i]),
                interest_amount=from_cents(emi_parts[i] - principal_parts[i]),
                outstanding_balance=from_cents(to_cents(loan.total_amount) - scheduled_cents),
                status=status,
            )
        )

    return schedule
