"""Role-based access control."""

import copy
from typing import Any

from .errors import InvalidAccount, Unauthorized
from .registry import EventListener, _ignore

ADMIN_ROLE = "ADMIN_ROLE"
PROVIDER_ROLE = "PROVIDER_ROLE"
CONSUMER_ROLE = "CONSUMER_ROLE"

ROLES = (ADMIN_ROLE, PROVIDER_ROLE, CONSUMER_ROLE)

# Admin of any role that has not been assigned one explicitly
DEFAULT_ADMIN_ROLE = "DEFAULT_ADMIN_ROLE"


class RoleStore:
    """Role membership with a configurable administering role per role.

    ``grant_role``/``revoke_role`` are gated on the sender holding the
    target role's admin role. The underscored variants skip the check and are
    used by the ledger for initialization and self-registration.
    """

    def __init__(self, listener: EventListener | None = None):
        self.listener: EventListener = listener or _ignore
        self._members: dict[str, set[str]] = {}
        self._admins: dict[str, str] = {}

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy({"members": self._members, "admins": self._admins})

    def restore(self, state: dict[str, Any]) -> None:
        state = copy.deepcopy(state)
        self._members = state["members"]
        self._admins = state["admins"]

    def has_role(self, role: str, account: str) -> bool:
        return account in self._members.get(role, set())

    def members(self, role: str) -> list[str]:
        return sorted(self._members.get(role, set()))

    def get_role_admin(self, role: str) -> str:
        return self._admins.get(role, DEFAULT_ADMIN_ROLE)

    def check_role(self, role: str, account: str) -> None:
        if not self.has_role(role, account):
            raise Unauthorized(f"Account {account} is missing role {role}")

    def grant_role(self, role: str, account: str, sender: str) -> None:
        self.check_role(self.get_role_admin(role), sender)
        self._grant_role(role, account, sender)

    def revoke_role(self, role: str, account: str, sender: str) -> None:
        self.check_role(self.get_role_admin(role), sender)
        self._revoke_role(role, account, sender)

    def renounce_role(self, role: str, account: str, sender: str) -> None:
        if account != sender:
            raise Unauthorized("Can only renounce roles for self")
        self._revoke_role(role, account, sender)

    def _set_role_admin(self, role: str, admin_role: str) -> None:
        previous = self.get_role_admin(role)
        self._admins[role] = admin_role
        self.listener(
            "RoleAdminChanged",
            {"role": role, "previous_admin_role": previous, "new_admin_role": admin_role},
        )

    def _grant_role(self, role: str, account: str, sender: str) -> None:
        if not account:
            raise InvalidAccount("Cannot grant a role to the zero address")
        if self.has_role(role, account):
            return
        self._members.setdefault(role, set()).add(account)
        self.listener("RoleGranted", {"role": role, "account": account, "sender": sender})

    def _revoke_role(self, role: str, account: str, sender: str) -> None:
        if not self.has_role(role, account):
            return
        self._members[role].discard(account)
        self.listener("RoleRevoked", {"role": role, "account": account, "sender": sender})
