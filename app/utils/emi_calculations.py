from datetime import date
from typing import List, Optional, Tuple


def add_months(d: date, months: int, day: int) -> date:
    """
    Same-day-of-month date `months` after d's month.

    day must be 1..28 so every month has it.
    """
    idx = d.year * 12 + (d.month - 1) + months
    return date(idx // 12, idx % 12 + 1, day)


def derive_disburse_amount(
        purchase_value: int,
        down_payment: int,
        override: Optional[int] = None,
) -> int:
    """
    disburse = purchase_value - down_payment (never negative),
    unless the admin typed an explicit amount.
    """
    if override is not None:
        return override
    return max(purchase_value - down_payment, 0)


def build_monthly_schedule(
        purchase_date: date,
        emi_due_day: int,
        emi_amount: int,
        emi_tenure: int,
) -> List[Tuple[int, date, int]]:
    """
    Returns [(emi_no, due_date, amount), ...]

    EMI #n falls on emi_due_day of the n-th month after the purchase month:
      purchase_date=2025-01-20, due_day=5 => #1 2025-02-05, #2 2025-03-05 ...
    """
    tenure = int(emi_tenure)
    if tenure <= 0:
        raise ValueError("emi_tenure must be > 0")
    if not 1 <= int(emi_due_day) <= 28:
        raise ValueError("emi_due_day must be between 1 and 28")

    return [
        (n, add_months(purchase_date, n, int(emi_due_day)), int(emi_amount))
        for n in range(1, tenure + 1)
    ]
