"""Test helpers shared across modules."""


ALICE = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
BOB = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

START_TIME = 1_700_000_000.0


class FakeClock:
    """Deterministic stand-in for time.time()."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


async def create_claims(coordinator, clock, count: int, amount: str = "100", tax_rate: str = "10") -> list[str]:
    """Create `count` claims a second apart and return their keys."""
    keys = []
    for i in range(count):
        result = await coordinator.create_claim(f"Receipt {i}", amount, tax_rate)
        assert result.ok, result.message
        keys.append(result.business_key)
        clock.advance(1)
    return keys
