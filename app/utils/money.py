from decimal import Decimal, ROUND_HALF_UP


def money(x) -> Decimal:
    """Always return 2-decimal Decimal with HALF_UP rounding."""
    if x is None:
        x = 0
    if not isinstance(x, Decimal):
        x = Decimal(str(x))
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_paise(x) -> int:
    """
    Rupees (float / str / Decimal) -> integer paise.

    Example:
      to_paise(1000.5) => 100050
    """
    return int(money(x) * 100)


def to_rupees(paise) -> float:
    """Integer paise -> rupees for JSON output."""
    if paise is None:
        return 0.0
    return float(Decimal(int(paise)) / Decimal("100"))
