import math

PRICE_PER_INTERVAL = 500   # cents per started 30 seconds
INTERVAL_SECONDS = 30
MINIMUM_PRICE = 1000


def calculate_price(duration: int) -> int:
    """Quote in minor units: $5 per started 30 seconds, $10 minimum."""
    if duration < 1:
        raise ValueError("duration must be at least 1 second")
    intervals = math.ceil(duration / INTERVAL_SECONDS)
    return max(MINIMUM_PRICE, intervals * PRICE_PER_INTERVAL)
