"""Native-currency balances and the value transfer primitive."""

import copy
import logging
from typing import Callable

from .errors import InsufficientFunds, InvalidAccount

logger = logging.getLogger(__name__)

# Called as hook(sender, amount) after the recipient has been credited
ReceiveHook = Callable[[str, int], None]


class PaymentLedger:
    """Balances in the smallest currency unit, keyed by account.

    Accounts may register a receive hook that runs whenever they are sent
    value, simulating a contract recipient. A hook that raises aborts the
    transfer, and the exception propagates to whoever called ``send_value``.
    """

    def __init__(self, balances: dict[str, int] | None = None):
        self._balances: dict[str, int] = dict(balances or {})
        self._hooks: dict[str, ReceiveHook] = {}

    def snapshot(self) -> dict[str, int]:
        return copy.deepcopy(self._balances)

    def restore(self, state: dict[str, int]) -> None:
        self._balances = copy.deepcopy(state)

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def accounts(self) -> dict[str, int]:
        return dict(self._balances)

    def register_receiver(self, account: str, hook: ReceiveHook | None) -> None:
        if hook is None:
            self._hooks.pop(account, None)
        else:
            self._hooks[account] = hook

    def deposit(self, account: str, amount: int) -> None:
        """Credit an account from outside the ledger (faucet / on-ramp)."""
        if not account:
            raise InvalidAccount("Cannot deposit to the zero address")
        if amount < 0:
            raise ValueError("Deposit amount must be non-negative")
        self._balances[account] = self.balance_of(account) + amount

    def debit(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Debit amount must be non-negative")
        balance = self.balance_of(account)
        if balance < amount:
            raise InsufficientFunds(
                f"Account {account} holds {balance}, needs {amount}"
            )
        self._balances[account] = balance - amount

    def send_value(self, sender: str, to: str, amount: int) -> None:
        """Move ``amount`` from sender to recipient, then run its receive hook."""
        if not to:
            raise InvalidAccount("Cannot send value to the zero address")
        self.debit(sender, amount)
        self._balances[to] = self.balance_of(to) + amount
        logger.debug("Sent %d from %s to %s", amount, sender, to)

        hook = self._hooks.get(to)
        if hook is not None:
            hook(sender, amount)
