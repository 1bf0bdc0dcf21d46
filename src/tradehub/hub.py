"""The energy trade hub: a tokenized energy marketplace ledger.

Providers mint energy tokens with a validity window, list them for sale and
consumers buy and burn them while the window is open. The hub composes an
ownership registry, a role store, a payment ledger, a reentrancy guard and a
clock, all injectable.

Every mutating operation takes the calling account as ``sender`` and runs as
one transaction: on any exception all collaborator state, the attached
payment and the event log are restored to what they were when the call
started.
"""

import copy
import logging
from contextlib import contextmanager
from typing import Any, Iterator

from .clock import SystemClock
from .errors import (
    InsufficientFunds,
    InvalidAccount,
    NotForSale,
    OutsideValidityWindow,
    PreconditionViolation,
    Unauthorized,
)
from .guard import ReentrancyGuard
from .models import SECONDS_PER_DAY, EnergyToken, Event, TokenSale
from .payments import PaymentLedger
from .registry import OwnershipRegistry
from .roles import ADMIN_ROLE, CONSUMER_ROLE, PROVIDER_ROLE, RoleStore

logger = logging.getLogger(__name__)

DEFAULT_NAME = "EnergyTradeToken"
DEFAULT_SYMBOL = "ETT"
DEFAULT_ADDRESS = "tradehub"


class EnergyTradeHub:
    """Marketplace ledger for energy tokens."""

    def __init__(
        self,
        admin: str,
        *,
        registry: OwnershipRegistry | None = None,
        roles: RoleStore | None = None,
        payments: PaymentLedger | None = None,
        guard: ReentrancyGuard | None = None,
        clock=None,
        name: str = DEFAULT_NAME,
        symbol: str = DEFAULT_SYMBOL,
        address: str = DEFAULT_ADDRESS,
        bootstrap: bool = True,
    ):
        """Wire collaborators and, unless ``bootstrap`` is False, set up roles.

        Bootstrapping grants ``admin`` the admin role and makes the admin role
        the administrator of every marketplace role. Pass ``bootstrap=False``
        when restoring a hub whose role state was persisted.
        """
        if not admin:
            raise InvalidAccount("Admin account is required")
        self.admin = admin
        self.name = name
        self.symbol = symbol
        self.address = address

        self.registry = registry or OwnershipRegistry()
        self.roles = roles or RoleStore()
        self.payments = payments or PaymentLedger()
        self.guard = guard or ReentrancyGuard()
        self.clock = clock or SystemClock()
        self.registry.listener = self._emit
        self.roles.listener = self._emit

        self._tokens: dict[int, EnergyToken] = {}
        self._sales: dict[int, TokenSale] = {}
        self._events: list[Event] = []
        self._next_token_id = 1
        self._depth = 0

        if bootstrap:
            with self._transaction(admin):
                self.roles._grant_role(ADMIN_ROLE, admin, admin)
                self.roles._set_role_admin(ADMIN_ROLE, ADMIN_ROLE)
                self.roles._set_role_admin(PROVIDER_ROLE, ADMIN_ROLE)
                self.roles._set_role_admin(CONSUMER_ROLE, ADMIN_ROLE)

    # Transactions and events

    def _snapshot(self) -> dict[str, Any]:
        return {
            "tokens": copy.deepcopy(self._tokens),
            "sales": copy.deepcopy(self._sales),
            "next_token_id": self._next_token_id,
            "events": len(self._events),
            "registry": self.registry.snapshot(),
            "roles": self.roles.snapshot(),
            "payments": self.payments.snapshot(),
        }

    def _restore(self, state: dict[str, Any]) -> None:
        self._tokens = state["tokens"]
        self._sales = state["sales"]
        self._next_token_id = state["next_token_id"]
        del self._events[state["events"]:]
        self.registry.restore(state["registry"])
        self.roles.restore(state["roles"])
        self.payments.restore(state["payments"])

    @contextmanager
    def _transaction(self, sender: str) -> Iterator[None]:
        """Run a block atomically on behalf of ``sender``.

        Nested transactions roll back independently.
        """
        if not sender:
            raise InvalidAccount("Sender account is required")
        if sender == self.address:
            raise InvalidAccount(f"{sender} is the marketplace escrow account")

        state = self._snapshot()
        self._depth += 1
        try:
            yield
        except Exception as e:
            self._restore(state)
            logger.debug("Rolled back transaction from %s: %s", sender, e)
            raise
        finally:
            self._depth -= 1

        if self._depth == 0:
            for event in self._events[state["events"]:]:
                logger.info("%s %s", event.name, event.args)

    def _emit(self, name: str, args: dict[str, Any]) -> None:
        self._events.append(Event(seq=len(self._events) + 1, name=name, args=dict(args)))

    def events(self, name: str | None = None) -> list[Event]:
        """Committed events, optionally filtered by name."""
        return [e for e in self._events if name is None or e.name == name]

    def load_ledger(
        self,
        tokens: list[EnergyToken],
        sales: dict[int, TokenSale],
        events: list[Event],
        next_token_id: int,
    ) -> None:
        """Replace the hub's own maps with previously persisted state."""
        self._tokens = {t.token_id: t for t in tokens}
        self._sales = dict(sales)
        self._events = list(events)
        self._next_token_id = next_token_id

    # Roles

    def has_role(self, role: str, account: str) -> bool:
        return self.roles.has_role(role, account)

    def get_role_admin(self, role: str) -> str:
        return self.roles.get_role_admin(role)

    def grant_role(self, role: str, account: str, sender: str) -> None:
        with self._transaction(sender):
            self.roles.grant_role(role, account, sender)

    def revoke_role(self, role: str, account: str, sender: str) -> None:
        with self._transaction(sender):
            self.roles.revoke_role(role, account, sender)

    def renounce_role(self, role: str, account: str, sender: str) -> None:
        with self._transaction(sender):
            self.roles.renounce_role(role, account, sender)

    def add_provider(self, account: str, sender: str) -> None:
        with self._transaction(sender):
            self.roles.check_role(ADMIN_ROLE, sender)
            self.roles.grant_role(PROVIDER_ROLE, account, sender)

    def register_as_consumer(self, sender: str) -> None:
        """Grant the caller the consumer role without admin approval."""
        with self._transaction(sender):
            self.roles._grant_role(CONSUMER_ROLE, sender, sender)

    # Reads

    def tokens(self, token_id: int) -> EnergyToken:
        """The stored record, or an all-zero record for unknown ids."""
        token = self._tokens.get(token_id)
        return copy.copy(token) if token else EnergyToken.empty(token_id)

    def token_sales(self, token_id: int) -> TokenSale:
        return copy.copy(self._sales.get(token_id, TokenSale()))

    def get_token(self, token_id: int) -> EnergyToken | None:
        token = self._tokens.get(token_id)
        return copy.copy(token) if token else None

    def get_sale(self, token_id: int) -> TokenSale | None:
        sale = self._sales.get(token_id)
        return copy.copy(sale) if sale is not None else None

    def all_tokens(self) -> list[EnergyToken]:
        return [copy.copy(self._tokens[i]) for i in sorted(self._tokens)]

    def all_sales(self) -> dict[int, TokenSale]:
        return {i: copy.copy(s) for i, s in sorted(self._sales.items())}

    @property
    def next_token_id(self) -> int:
        return self._next_token_id

    def owner_of(self, token_id: int) -> str:
        return self.registry.owner_of(token_id)

    def token_uri(self, token_id: int) -> str:
        return self.registry.get_uri(token_id)

    def balance_of(self, account: str) -> int:
        return self.registry.balance_of(account)

    def total_supply(self) -> int:
        return len(self._tokens)

    # Token lifecycle

    def create_token(
        self,
        energy_type: str,
        valid_from: int,
        valid_to: int,
        start_time: int,
        end_time: int,
        amount_in_kw: int,
        token_uri: str,
        sender: str,
    ) -> int:
        """Mint a new energy token to the calling provider. Returns its id."""
        with self._transaction(sender):
            self.roles.check_role(PROVIDER_ROLE, sender)
            if start_time >= end_time:
                raise PreconditionViolation("Start time must be before end time")
            if valid_from >= valid_to:
                raise PreconditionViolation("Valid from must be before valid to")
            if amount_in_kw <= 0:
                raise PreconditionViolation("Amount must be greater than zero")

            token_id = self._next_token_id
            self._next_token_id += 1

            self.registry.mint(sender, token_id)
            self.registry.set_uri(token_id, token_uri)
            self._tokens[token_id] = EnergyToken(
                token_id=token_id,
                owner=sender,
                energy_type=energy_type,
                valid_from=valid_from,
                valid_to=valid_to,
                start_time=start_time,
                end_time=end_time,
                amount_in_kw=amount_in_kw,
                balance_in_kw=amount_in_kw,
            )
            self._sales[token_id] = TokenSale()
            self._emit(
                "TokenCreated",
                {
                    "token_id": token_id,
                    "owner": sender,
                    "energy_type": energy_type,
                    "valid_from": valid_from,
                    "valid_to": valid_to,
                    "start_time": start_time,
                    "end_time": end_time,
                    "amount_in_kw": amount_in_kw,
                    "token_uri": token_uri,
                },
            )
        return token_id

    def _check_owner(self, token_id: int, sender: str) -> None:
        if self.registry.owner_of(token_id) != sender:
            raise Unauthorized(f"Caller is not the owner of token {token_id}")

    def list_token_for_sale(self, token_id: int, price: int, sender: str) -> None:
        with self._transaction(sender):
            self._check_owner(token_id, sender)
            if price < 0:
                raise PreconditionViolation("Price must be non-negative")
            self._sales[token_id] = TokenSale(is_for_sale=True, price=price)
            self._emit("TokenListedForSale", {"token_id": token_id, "price": price})

    def withdraw_token_from_sale(self, token_id: int, sender: str) -> None:
        with self._transaction(sender):
            self._check_owner(token_id, sender)
            self._sales.setdefault(token_id, TokenSale()).is_for_sale = False
            self._emit("TokenSaleWithdrawn", {"token_id": token_id})

    def buy_token(self, token_id: int, sender: str, value: int) -> None:
        """Buy a listed token, forwarding the whole payment to the seller.

        Overpayment is not refunded. The emitted event carries the listed
        price rather than the amount paid. The payment is escrowed only once
        the listing and price checks pass.
        """
        with self._transaction(sender), self.guard:
            if value < 0:
                raise PreconditionViolation("Attached value must be non-negative")
            sale = self._sales.get(token_id)
            if sale is None or not sale.is_for_sale:
                raise NotForSale(f"Token {token_id} is not for sale")
            if value < sale.price:
                raise InsufficientFunds(
                    f"Payment of {value} is below the listed price of {sale.price}"
                )
            self.payments.send_value(sender, self.address, value)

            price = sale.price
            seller = self.registry.owner_of(token_id)
            self.registry.transfer(seller, sender, token_id)
            self.payments.send_value(self.address, seller, value)
            # A receive hook's rolled-back call replaces the sales map
            self._sales[token_id].is_for_sale = False
            self._emit(
                "TokenPurchased",
                {"token_id": token_id, "buyer": sender, "price": price},
            )

    def burn_token(self, token_id: int, sender: str) -> None:
        """Redeem a token. The sale record is left in place."""
        with self._transaction(sender):
            self.roles.check_role(CONSUMER_ROLE, sender)
            self._check_owner(token_id, sender)
            if not self.is_within_valid_period(token_id):
                raise OutsideValidityWindow(
                    f"Token {token_id} is outside its validity window"
                )
            self.registry.burn(token_id)
            del self._tokens[token_id]
            self._emit("TokenBurned", {"token_id": token_id, "owner": sender})

    def is_within_valid_period(self, token_id: int) -> bool:
        token = self.tokens(token_id)
        now = self.clock.now()
        time_of_day = now % SECONDS_PER_DAY

        is_within_date = token.valid_from <= now <= token.valid_to
        is_within_time = token.start_time <= time_of_day <= token.end_time
        return is_within_date and is_within_time

    # NFT approvals and transfers

    def approve(self, to: str | None, token_id: int, sender: str) -> None:
        with self._transaction(sender):
            self.registry.approve(to, token_id, sender)

    def get_approved(self, token_id: int) -> str | None:
        return self.registry.get_approved(token_id)

    def set_approval_for_all(self, operator: str, approved: bool, sender: str) -> None:
        with self._transaction(sender):
            self.registry.set_approval_for_all(sender, operator, approved)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self.registry.is_approved_for_all(owner, operator)

    def transfer_from(self, from_account: str, to: str, token_id: int, sender: str) -> None:
        with self._transaction(sender):
            self.registry.transfer_from(from_account, to, token_id, sender)

    # Wallets

    def deposit(self, account: str, amount: int) -> None:
        """Credit an account's wallet from outside the marketplace."""
        with self._transaction(account):
            self.payments.deposit(account, amount)

    def wallet_balance(self, account: str) -> int:
        return self.payments.balance_of(account)
