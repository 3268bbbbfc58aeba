"""
helpers.py - Shared test helpers (clock and marketplace factory)
"""

from datetime import datetime, timedelta, timezone

from bazaar import InMemoryGateway, Marketplace, open_marketplace


T0 = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta = timedelta(minutes=1)) -> datetime:
        self.now += delta
        return self.now


def build_market(gateway=None, clock=None, seed: bool = False, **kwargs) -> Marketplace:
    """Quiet marketplace with cheap credential hashing."""
    kwargs.setdefault("hash_iterations", 1)
    kwargs.setdefault("verbose", False)
    return open_marketplace(
        gateway if gateway is not None else InMemoryGateway(),
        seed=seed,
        clock=clock or ManualClock(),
        **kwargs,
    )
