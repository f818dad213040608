def compute_commission(amount: float, percentage: float) -> float:
    """Platform cut of ``amount`` at ``percentage`` (10 == 10%), rounded to cents."""
    a = float(amount or 0.0)
    p = float(percentage or 0.0)
    if a < 0:
        a = 0.0
    if p < 0:
        p = 0.0
    return round(a * p / 100.0, 2)


def split_commission(total: float, percentage: float) -> tuple[float, float]:
    """Return ``(platform_fee, seller_amount)``.

    The fee is rounded first and the seller gets the remainder, so the two
    always add back up to the rounded total.
    """
    gross = round(float(total or 0.0), 2)
    fee = compute_commission(gross, percentage)
    return fee, round(gross - fee, 2)
