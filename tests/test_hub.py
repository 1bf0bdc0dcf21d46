"""Tests for token creation, listing, purchase and burning."""

import pytest

from tradehub.errors import (
    InsufficientFunds,
    InvalidAccount,
    NotForSale,
    OutsideValidityWindow,
    PreconditionViolation,
    TokenNotFound,
    TransferRejected,
    Unauthorized,
)
from tradehub.models import TokenSale
from tradehub.roles import ADMIN_ROLE, CONSUMER_ROLE, PROVIDER_ROLE


def test_deployer_is_admin(hub):
    assert hub.has_role(ADMIN_ROLE, "admin")
    assert hub.get_role_admin(PROVIDER_ROLE) == ADMIN_ROLE
    assert hub.get_role_admin(CONSUMER_ROLE) == ADMIN_ROLE


def test_create_token_assigns_sequential_ids(mint):
    assert [mint(), mint(), mint()] == [1, 2, 3]


def test_create_token_stores_fields(hub, mint):
    token_id = mint(
        energy_type="Wind",
        valid_from=100,
        valid_to=200,
        start_time=3600,
        end_time=7200,
        amount_in_kw=750,
        token_uri="http://example.com/token2",
    )

    token = hub.tokens(token_id)
    assert token.energy_type == "Wind"
    assert (token.valid_from, token.valid_to) == (100, 200)
    assert (token.start_time, token.end_time) == (3600, 7200)
    assert token.amount_in_kw == 750
    assert token.balance_in_kw == 750
    assert token.owner == "provider"
    assert hub.owner_of(token_id) == "provider"
    assert hub.token_uri(token_id) == "http://example.com/token2"
    assert hub.token_sales(token_id) == TokenSale(is_for_sale=False, price=0)


def test_create_token_emits_event(hub, mint):
    token_id = mint()

    created = hub.events("TokenCreated")
    assert len(created) == 1
    assert created[0].args["token_id"] == token_id
    assert created[0].args["amount_in_kw"] == 100
    assert created[0].args["token_uri"] == "http://example.com/token"
    assert hub.events("Transfer")[-1].args == {"from": None, "to": "provider", "token_id": token_id}


@pytest.mark.parametrize(
    "overrides",
    [
        {"start_time": 500, "end_time": 500},
        {"start_time": 600, "end_time": 500},
        {"valid_from": 10, "valid_to": 10},
        {"valid_from": 11, "valid_to": 10},
        {"amount_in_kw": 0},
    ],
)
def test_create_token_rejects_invalid_ranges(hub, mint, overrides):
    events_before = len(hub.events())

    with pytest.raises(PreconditionViolation):
        mint(**overrides)

    assert hub.total_supply() == 0
    assert hub.next_token_id == 1
    assert len(hub.events()) == events_before
    assert hub.balance_of("provider") == 0


def test_only_providers_create_tokens(hub, mint):
    with pytest.raises(Unauthorized):
        mint(sender="consumer")
    with pytest.raises(Unauthorized):
        mint(sender="admin")

    assert hub.total_supply() == 0
    assert mint() == 1


def test_list_and_withdraw(hub, mint):
    token_id = mint()

    hub.list_token_for_sale(token_id, 1000, sender="provider")
    assert hub.token_sales(token_id) == TokenSale(is_for_sale=True, price=1000)

    hub.withdraw_token_from_sale(token_id, sender="provider")
    sale = hub.token_sales(token_id)
    assert sale.is_for_sale is False
    assert sale.price == 1000  # stale but inert

    assert [e.name for e in hub.events()][-2:] == ["TokenListedForSale", "TokenSaleWithdrawn"]


def test_list_accepts_zero_price(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 0, sender="provider")
    assert hub.token_sales(token_id) == TokenSale(is_for_sale=True, price=0)


def test_only_owner_lists_and_withdraws(hub, mint):
    token_id = mint()

    with pytest.raises(Unauthorized):
        hub.list_token_for_sale(token_id, 1000, sender="consumer")

    hub.list_token_for_sale(token_id, 1000, sender="provider")
    with pytest.raises(Unauthorized):
        hub.withdraw_token_from_sale(token_id, sender="consumer")
    assert hub.token_sales(token_id).is_for_sale is True


def test_list_unknown_token(hub):
    with pytest.raises(TokenNotFound):
        hub.list_token_for_sale(99, 1000, sender="provider")


def test_get_sale(hub, mint):
    token_id = mint()
    assert hub.get_sale(token_id) == TokenSale(is_for_sale=False, price=0)

    hub.list_token_for_sale(token_id, 1000, sender="provider")
    sale = hub.get_sale(token_id)
    assert sale == TokenSale(is_for_sale=True, price=1000)

    # returns a copy
    sale.price = 1
    assert hub.get_sale(token_id).price == 1000
    assert hub.get_sale(99) is None


def test_buy_scenario(hub):
    token_id = hub.create_token("Solar", 0, 10**12, 0, 86399, 100, "", sender="provider")
    hub.list_token_for_sale(token_id, 1000, sender="provider")

    hub.buy_token(token_id, sender="consumer", value=1000)

    assert hub.owner_of(token_id) == "consumer"
    assert hub.wallet_balance("provider") == 1000
    assert hub.wallet_balance("consumer") == 9_000
    assert hub.token_sales(token_id).is_for_sale is False
    assert hub.wallet_balance(hub.address) == 0


def test_buy_forwards_overpayment(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 1000, sender="provider")

    hub.buy_token(token_id, sender="consumer", value=2500)

    assert hub.wallet_balance("provider") == 2500
    assert hub.wallet_balance("consumer") == 7_500
    purchased = hub.events("TokenPurchased")
    assert purchased[-1].args == {"token_id": token_id, "buyer": "consumer", "price": 1000}


def test_buy_requires_listing(hub, mint):
    token_id = mint()

    with pytest.raises(NotForSale):
        hub.buy_token(token_id, sender="consumer", value=1000)

    hub.list_token_for_sale(token_id, 1000, sender="provider")
    hub.withdraw_token_from_sale(token_id, sender="provider")
    with pytest.raises(NotForSale):
        hub.buy_token(token_id, sender="consumer", value=1000)

    assert hub.owner_of(token_id) == "provider"
    assert hub.wallet_balance("consumer") == 10_000


def test_buy_requires_full_price(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 1000, sender="provider")

    with pytest.raises(InsufficientFunds):
        hub.buy_token(token_id, sender="consumer", value=999)

    assert hub.owner_of(token_id) == "provider"
    assert hub.wallet_balance("consumer") == 10_000
    assert hub.wallet_balance("provider") == 0
    assert hub.token_sales(token_id).is_for_sale is True


def test_buy_requires_wallet_funds(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 1000, sender="provider")

    with pytest.raises(InsufficientFunds):
        hub.buy_token(token_id, sender="pauper", value=1000)

    assert hub.owner_of(token_id) == "provider"


def test_unlisted_token_reports_not_for_sale_before_funds(hub, mint):
    """An empty wallet must not mask the listing check."""
    token_id = mint()

    with pytest.raises(NotForSale):
        hub.buy_token(token_id, sender="pauper", value=1000)

    assert hub.wallet_balance("pauper") == 0
    assert hub.wallet_balance(hub.address) == 0


def test_escrow_account_cannot_act(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 0, sender="provider")

    with pytest.raises(InvalidAccount, match="escrow"):
        hub.deposit(hub.address, 5)
    with pytest.raises(InvalidAccount):
        hub.buy_token(token_id, sender=hub.address, value=0)

    assert hub.wallet_balance(hub.address) == 0
    assert hub.owner_of(token_id) == "provider"


def test_buy_does_not_require_consumer_role(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 1000, sender="provider")

    hub.buy_token(token_id, sender="outsider", value=1000)

    assert hub.owner_of(token_id) == "outsider"


def test_purchase_reads_registry_not_cached_owner(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 1000, sender="provider")
    hub.buy_token(token_id, sender="consumer", value=1000)

    # cached owner field keeps the minter
    assert hub.tokens(token_id).owner == "provider"

    hub.list_token_for_sale(token_id, 3000, sender="consumer")
    hub.buy_token(token_id, sender="outsider", value=3000)

    assert hub.owner_of(token_id) == "outsider"
    assert hub.wallet_balance("consumer") == 9_000 + 3000
    assert hub.wallet_balance("provider") == 1000
    assert hub.tokens(token_id).owner == "provider"


def test_rejected_payment_rolls_back_purchase(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 1000, sender="provider")

    def refuse(sender, amount):
        raise TransferRejected("not accepting payments")

    hub.payments.register_receiver("provider", refuse)
    events_before = len(hub.events())

    with pytest.raises(TransferRejected):
        hub.buy_token(token_id, sender="consumer", value=1000)

    assert hub.owner_of(token_id) == "provider"
    assert hub.wallet_balance("consumer") == 10_000
    assert hub.wallet_balance("provider") == 0
    assert hub.token_sales(token_id).is_for_sale is True
    assert len(hub.events()) == events_before


def test_burn_token(hub, mint):
    token_id = mint()
    hub.list_token_for_sale(token_id, 1000, sender="provider")
    hub.buy_token(token_id, sender="consumer", value=1000)

    hub.burn_token(token_id, sender="consumer")

    assert hub.get_token(token_id) is None
    assert hub.total_supply() == 0
    assert hub.balance_of("consumer") == 0
    with pytest.raises(TokenNotFound):
        hub.owner_of(token_id)
    with pytest.raises(TokenNotFound):
        hub.token_uri(token_id)

    burned = hub.events("TokenBurned")
    assert len(burned) == 1
    assert burned[0].args == {"token_id": token_id, "owner": "consumer"}


def test_burn_requires_consumer_role(hub, mint):
    token_id = mint()

    # provider owns it but is not a consumer
    with pytest.raises(Unauthorized):
        hub.burn_token(token_id, sender="provider")

    hub.register_as_consumer("provider")
    hub.burn_token(token_id, sender="provider")
    assert hub.get_token(token_id) is None


def test_burn_requires_ownership(hub, mint):
    token_id = mint()

    with pytest.raises(Unauthorized):
        hub.burn_token(token_id, sender="consumer")
    assert hub.owner_of(token_id) == "provider"


def test_burn_outside_window(hub, clock, mint):
    token_id = mint(valid_from=clock.now() + 10, valid_to=clock.now() + 1000)
    hub.transfer_from("provider", "consumer", token_id, sender="provider")

    with pytest.raises(OutsideValidityWindow):
        hub.burn_token(token_id, sender="consumer")

    assert hub.owner_of(token_id) == "consumer"
    assert hub.events("TokenBurned") == []


def test_sale_record_survives_burn(hub, mint):
    token_id = mint()
    hub.register_as_consumer("provider")
    hub.list_token_for_sale(token_id, 1000, sender="provider")

    hub.burn_token(token_id, sender="provider")

    assert hub.token_sales(token_id) == TokenSale(is_for_sale=True, price=1000)
    with pytest.raises(TokenNotFound):
        hub.buy_token(token_id, sender="consumer", value=1000)
    assert hub.wallet_balance("consumer") == 10_000


def test_balance_in_kw_never_changes(hub, mint):
    token_id = mint(amount_in_kw=40)
    hub.list_token_for_sale(token_id, 10, sender="provider")
    hub.buy_token(token_id, sender="consumer", value=10)

    assert hub.tokens(token_id).balance_in_kw == 40


def test_unknown_token_reads_as_empty(hub):
    token = hub.tokens(42)
    assert token.token_id == 42
    assert token.owner == ""
    assert token.amount_in_kw == 0
    assert hub.token_sales(42) == TokenSale()
