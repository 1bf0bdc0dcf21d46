"""Tests for role administration."""

import pytest

from tradehub.errors import InvalidAccount, Unauthorized
from tradehub.hub import EnergyTradeHub
from tradehub.roles import ADMIN_ROLE, CONSUMER_ROLE, PROVIDER_ROLE, RoleStore


def test_admin_assigns_roles(hub):
    hub.grant_role(PROVIDER_ROLE, "p2", sender="admin")
    hub.grant_role(CONSUMER_ROLE, "c2", sender="admin")

    assert hub.has_role(PROVIDER_ROLE, "p2")
    assert hub.has_role(CONSUMER_ROLE, "c2")


def test_providers_and_consumers_cannot_assign_roles(hub):
    with pytest.raises(Unauthorized):
        hub.grant_role(PROVIDER_ROLE, "mallory", sender="provider")
    with pytest.raises(Unauthorized):
        hub.grant_role(CONSUMER_ROLE, "mallory", sender="consumer")

    assert not hub.has_role(PROVIDER_ROLE, "mallory")
    assert not hub.has_role(CONSUMER_ROLE, "mallory")


def test_admin_revokes_roles(hub):
    assert hub.has_role(PROVIDER_ROLE, "provider")

    hub.revoke_role(PROVIDER_ROLE, "provider", sender="admin")

    assert not hub.has_role(PROVIDER_ROLE, "provider")
    assert hub.events("RoleRevoked")[-1].args == {
        "role": PROVIDER_ROLE,
        "account": "provider",
        "sender": "admin",
    }


def test_role_transfer(hub):
    hub.revoke_role(CONSUMER_ROLE, "consumer", sender="admin")
    hub.grant_role(CONSUMER_ROLE, "provider", sender="admin")

    assert not hub.has_role(CONSUMER_ROLE, "consumer")
    assert hub.has_role(CONSUMER_ROLE, "provider")


def test_add_provider_requires_admin(hub):
    with pytest.raises(Unauthorized):
        hub.add_provider("mallory", sender="provider")

    hub.add_provider("p2", sender="admin")
    assert hub.has_role(PROVIDER_ROLE, "p2")


def test_register_as_consumer_is_self_service(hub):
    hub.register_as_consumer("newcomer")

    assert hub.has_role(CONSUMER_ROLE, "newcomer")
    assert hub.events("RoleGranted")[-1].args == {
        "role": CONSUMER_ROLE,
        "account": "newcomer",
        "sender": "newcomer",
    }


def test_granting_existing_role_emits_nothing(hub):
    granted = len(hub.events("RoleGranted"))
    hub.register_as_consumer("consumer")
    assert len(hub.events("RoleGranted")) == granted


def test_renounce_only_for_self(hub):
    with pytest.raises(Unauthorized):
        hub.renounce_role(CONSUMER_ROLE, "consumer", sender="admin")

    hub.renounce_role(CONSUMER_ROLE, "consumer", sender="consumer")
    assert not hub.has_role(CONSUMER_ROLE, "consumer")


def test_admin_administers_itself(hub):
    hub.grant_role(ADMIN_ROLE, "deputy", sender="admin")
    hub.add_provider("p3", sender="deputy")

    assert hub.has_role(PROVIDER_ROLE, "p3")


def test_hub_requires_admin_account():
    with pytest.raises(InvalidAccount):
        EnergyTradeHub("")


def test_role_store_default_admin():
    roles = RoleStore()
    assert roles.get_role_admin("ANY") == "DEFAULT_ADMIN_ROLE"
    with pytest.raises(Unauthorized):
        roles.grant_role("ANY", "bob", sender="alice")
