"""Non-fungible token ownership registry with per-token URI storage."""

import copy
from typing import Any, Callable

from .errors import InvalidAccount, TokenNotFound, Unauthorized

EventListener = Callable[[str, dict[str, Any]], None]


def _ignore(name: str, args: dict[str, Any]) -> None:
    pass


class OwnershipRegistry:
    """Tracks which account owns each token id.

    Every id has exactly one owner while it exists. Mint, transfer and burn
    emit a ``Transfer`` event through ``listener`` (mint has no sender, burn no
    recipient).
    """

    def __init__(self, listener: EventListener | None = None):
        self.listener: EventListener = listener or _ignore
        self._owners: dict[int, str] = {}
        self._balances: dict[str, int] = {}
        self._uris: dict[int, str] = {}
        self._token_approvals: dict[int, str] = {}
        self._operator_approvals: dict[str, set[str]] = {}

    # State capture for transactional rollback and persistence

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "owners": self._owners,
                "balances": self._balances,
                "uris": self._uris,
                "token_approvals": self._token_approvals,
                "operator_approvals": self._operator_approvals,
            }
        )

    def restore(self, state: dict[str, Any]) -> None:
        state = copy.deepcopy(state)
        self._owners = state["owners"]
        self._balances = state["balances"]
        self._uris = state["uris"]
        self._token_approvals = state["token_approvals"]
        self._operator_approvals = state["operator_approvals"]

    # Queries

    def exists(self, token_id: int) -> bool:
        return token_id in self._owners

    def owner_of(self, token_id: int) -> str:
        owner = self._owners.get(token_id)
        if owner is None:
            raise TokenNotFound(f"Invalid token ID: {token_id}")
        return owner

    def balance_of(self, account: str) -> int:
        if not account:
            raise InvalidAccount("Zero address is not a valid owner")
        return self._balances.get(account, 0)

    def token_ids(self) -> list[int]:
        return sorted(self._owners)

    def get_uri(self, token_id: int) -> str:
        self.owner_of(token_id)
        return self._uris.get(token_id, "")

    def get_approved(self, token_id: int) -> str | None:
        self.owner_of(token_id)
        return self._token_approvals.get(token_id)

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return operator in self._operator_approvals.get(owner, set())

    def is_approved_or_owner(self, spender: str, token_id: int) -> bool:
        owner = self.owner_of(token_id)
        return (
            spender == owner
            or self.is_approved_for_all(owner, spender)
            or self._token_approvals.get(token_id) == spender
        )

    # Mutations

    def mint(self, owner: str, token_id: int) -> None:
        if not owner:
            raise InvalidAccount("Cannot mint to the zero address")
        if token_id in self._owners:
            raise Unauthorized(f"Token {token_id} already minted")
        self._owners[token_id] = owner
        self._balances[owner] = self._balances.get(owner, 0) + 1
        self.listener("Transfer", {"from": None, "to": owner, "token_id": token_id})

    def transfer(self, from_account: str, to: str, token_id: int) -> None:
        """Move a token between accounts without any approval check."""
        if self.owner_of(token_id) != from_account:
            raise Unauthorized(f"Token {token_id} is not owned by {from_account}")
        if not to:
            raise InvalidAccount("Cannot transfer to the zero address")
        self._token_approvals.pop(token_id, None)
        self._balances[from_account] -= 1
        self._balances[to] = self._balances.get(to, 0) + 1
        self._owners[token_id] = to
        self.listener("Transfer", {"from": from_account, "to": to, "token_id": token_id})

    def burn(self, token_id: int) -> None:
        owner = self.owner_of(token_id)
        self._token_approvals.pop(token_id, None)
        self._balances[owner] -= 1
        del self._owners[token_id]
        self._uris.pop(token_id, None)
        self.listener("Transfer", {"from": owner, "to": None, "token_id": token_id})

    def set_uri(self, token_id: int, uri: str) -> None:
        self.owner_of(token_id)
        self._uris[token_id] = uri

    def approve(self, to: str | None, token_id: int, sender: str) -> None:
        owner = self.owner_of(token_id)
        if to == owner:
            raise Unauthorized("Approval to current owner")
        if sender != owner and not self.is_approved_for_all(owner, sender):
            raise Unauthorized("Approve caller is not token owner or approved for all")
        if to:
            self._token_approvals[token_id] = to
        else:
            self._token_approvals.pop(token_id, None)
        self.listener("Approval", {"owner": owner, "approved": to, "token_id": token_id})

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        if owner == operator:
            raise Unauthorized("Approve to caller")
        operators = self._operator_approvals.setdefault(owner, set())
        if approved:
            operators.add(operator)
        else:
            operators.discard(operator)
        self.listener(
            "ApprovalForAll", {"owner": owner, "operator": operator, "approved": approved}
        )

    def transfer_from(self, from_account: str, to: str, token_id: int, sender: str) -> None:
        """Transfer on behalf of the owner; sender must be owner or approved."""
        if not self.is_approved_or_owner(sender, token_id):
            raise Unauthorized("Caller is not token owner or approved")
        self.transfer(from_account, to, token_id)
