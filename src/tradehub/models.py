"""Data models for energy tokens, sale listings and ledger events."""

from dataclasses import dataclass, field
from typing import Any

SECONDS_PER_DAY = 86400


@dataclass
class EnergyToken:
    """A minted block of energy with its validity windows."""

    token_id: int
    owner: str  # minting account, never updated after mint
    energy_type: str
    valid_from: int  # unix seconds
    valid_to: int  # unix seconds
    start_time: int  # seconds of day
    end_time: int  # seconds of day
    amount_in_kw: int
    balance_in_kw: int

    @classmethod
    def empty(cls, token_id: int) -> "EnergyToken":
        """The all-zero record an unknown token id reads as."""
        return cls(token_id, "", "", 0, 0, 0, 0, 0, 0)


@dataclass
class TokenSale:
    """Sale listing state for a single token."""

    is_for_sale: bool = False
    price: int = 0


@dataclass
class Event:
    """A state change emitted by the ledger."""

    seq: int
    name: str
    args: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"seq": self.seq, "name": self.name, "args": dict(self.args)}
