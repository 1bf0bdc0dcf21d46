import pytest

from tradehub.clock import FixedClock
from tradehub.hub import EnergyTradeHub

# Noon UTC on 2023-11-14
NOW = 1_699_963_200
DAY = 86400


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def hub(clock):
    """A hub with one provider, one registered consumer and funded wallets."""
    h = EnergyTradeHub("admin", clock=clock)
    h.add_provider("provider", sender="admin")
    h.register_as_consumer("consumer")
    h.deposit("consumer", 10_000)
    h.deposit("outsider", 10_000)
    return h


@pytest.fixture
def mint(hub):
    """Create a token as the provider; keyword arguments override defaults."""

    def _mint(**overrides):
        args = {
            "energy_type": "Solar",
            "valid_from": 0,
            "valid_to": 10**12,
            "start_time": 0,
            "end_time": DAY - 1,
            "amount_in_kw": 100,
            "token_uri": "http://example.com/token",
            "sender": "provider",
        }
        args.update(overrides)
        return hub.create_token(**args)

    return _mint
