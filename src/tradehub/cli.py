"""Command-line interface for the energy trade hub."""

import json
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import db
from .clock import FixedClock, SystemClock
from .config import load_settings
from .errors import TradeHubError
from .hub import EnergyTradeHub
from .metadata import fetch_token_metadata
from .roles import ROLES

console = Console()


def parse_timestamp(value: str) -> int:
    """Parse unix seconds or an ISO 8601 datetime (naive means UTC)."""
    if value.lstrip("-").isdigit():
        return int(value)
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Expected unix seconds or ISO datetime, got {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def parse_time_of_day(value: str) -> int:
    """Parse seconds-of-day or HH:MM[:SS] into seconds since midnight."""
    if value.isdigit():
        seconds = int(value)
        if seconds > 86399:
            raise click.BadParameter(f"Seconds of day must be at most 86399, got {value!r}")
        return seconds
    parts = value.split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise click.BadParameter(f"Expected seconds or HH:MM[:SS], got {value!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    seconds = int(parts[2]) if len(parts) == 3 else 0
    if hours > 23 or minutes > 59 or seconds > 59:
        raise click.BadParameter(f"Time of day out of range: {value!r}")
    return hours * 3600 + minutes * 60 + seconds


def format_timestamp(ts: int) -> str:
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        # beyond the datetime range
        return str(ts)


def format_time_of_day(seconds: int) -> str:
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"


def _fail(message: str) -> None:
    console.print(f"[red]Error: {message}[/red]")
    raise SystemExit(1)


def _caller(ctx) -> str:
    account = ctx.obj["account"]
    if not account:
        _fail("No caller account - pass --as or set TRADEHUB_ACCOUNT")
    return account


def _load(ctx) -> EnergyTradeHub:
    try:
        return db.load_hub(ctx.obj["db_path"], clock=ctx.obj["clock"])
    except TradeHubError as e:
        _fail(str(e))


@contextmanager
def _session(ctx, save: bool = True) -> Iterator[EnergyTradeHub]:
    """Load the hub, run one operation, and persist it if it succeeded."""
    hub = _load(ctx)
    try:
        yield hub
    except TradeHubError as e:
        _fail(f"{type(e).__name__}: {e}")
    if save:
        db.save_hub(hub, ctx.obj["db_path"])


@click.group()
@click.option("--db-path", type=click.Path(), help="Path to SQLite database")
@click.option("--config", "config_path", type=click.Path(), help="Path to tradehub.yaml")
@click.option("--as", "account", help="Account making the call (or set TRADEHUB_ACCOUNT)")
@click.option("--now", type=int, help="Fix the clock to this unix timestamp")
@click.option("--verbose", "-v", is_flag=True, help="Log ledger events")
@click.pass_context
def cli(ctx, db_path, config_path, account, now, verbose):
    """Energy trade hub - mint, trade and redeem energy tokens."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    try:
        settings = load_settings(Path(config_path) if config_path else None)
    except TradeHubError as e:
        _fail(str(e))

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings
    ctx.obj["db_path"] = Path(db_path) if db_path else settings.db_path
    ctx.obj["account"] = account or settings.account
    ctx.obj["clock"] = FixedClock(now) if now is not None else SystemClock()

    ctx.obj["db_path"].parent.mkdir(parents=True, exist_ok=True)


@cli.command()
@click.option("--admin", required=True, help="Account granted the admin role")
@click.option("--name", help="Token collection name")
@click.option("--symbol", help="Token collection symbol")
@click.option("--force", is_flag=True, help="Replace an existing marketplace")
@click.pass_context
def init(ctx, admin, name, symbol, force):
    """Create a new marketplace with ADMIN as its administrator."""
    db_path = ctx.obj["db_path"]
    db.init_db(db_path)
    if db.is_initialized(db_path) and not force:
        _fail(f"Marketplace already exists at {db_path} (use --force to replace)")

    settings = ctx.obj["settings"]
    hub = EnergyTradeHub(
        admin,
        clock=ctx.obj["clock"],
        name=name or settings.token_name,
        symbol=symbol or settings.token_symbol,
    )
    db.save_hub(hub, db_path)
    console.print(f"[green]Marketplace {hub.name} ({hub.symbol}) initialized, admin {admin}[/green]")


@cli.command()
@click.pass_context
def stats(ctx):
    """Show marketplace statistics."""
    _load(ctx)
    data = db.get_stats(ctx.obj["db_path"])

    table = Table(title="Marketplace Statistics")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")

    table.add_row("Tokens", str(data["tokens"]["count"]))
    table.add_row("Listed for sale", str(data["listed"]["count"]))
    for role, count in data["roles"].items():
        table.add_row(f"  └ {role}", str(count))
    table.add_row("Wallets", str(data["wallets"]["count"]))
    for name, count in data["events"].items():
        table.add_row(f"  └ {name} events", str(count))

    console.print(table)


# Role commands
@cli.group()
def role():
    """Role administration commands."""
    pass


role_choice = click.Choice(ROLES, case_sensitive=False)


@role.command("grant")
@click.argument("role_name", type=role_choice)
@click.argument("account")
@click.pass_context
def role_grant(ctx, role_name, account):
    """Grant ROLE_NAME to ACCOUNT (caller must hold the role's admin role)."""
    with _session(ctx) as hub:
        hub.grant_role(role_name.upper(), account, _caller(ctx))
    console.print(f"[green]Granted {role_name.upper()} to {account}[/green]")


@role.command("revoke")
@click.argument("role_name", type=role_choice)
@click.argument("account")
@click.pass_context
def role_revoke(ctx, role_name, account):
    """Revoke ROLE_NAME from ACCOUNT."""
    with _session(ctx) as hub:
        hub.revoke_role(role_name.upper(), account, _caller(ctx))
    console.print(f"[green]Revoked {role_name.upper()} from {account}[/green]")


@role.command("renounce")
@click.argument("role_name", type=role_choice)
@click.pass_context
def role_renounce(ctx, role_name):
    """Give up ROLE_NAME for the calling account."""
    caller = _caller(ctx)
    with _session(ctx) as hub:
        hub.renounce_role(role_name.upper(), caller, caller)
    console.print(f"[green]{caller} renounced {role_name.upper()}[/green]")


@role.command("check")
@click.argument("role_name", type=role_choice)
@click.argument("account")
@click.pass_context
def role_check(ctx, role_name, account):
    """Show whether ACCOUNT holds ROLE_NAME."""
    hub = _load(ctx)
    if hub.has_role(role_name.upper(), account):
        console.print(f"[green]{account} has {role_name.upper()}[/green]")
    else:
        console.print(f"[yellow]{account} does not have {role_name.upper()}[/yellow]")


@role.command("add-provider")
@click.argument("account")
@click.pass_context
def role_add_provider(ctx, account):
    """Make ACCOUNT an energy provider (admin only)."""
    with _session(ctx) as hub:
        hub.add_provider(account, _caller(ctx))
    console.print(f"[green]{account} is now a provider[/green]")


@role.command("register-consumer")
@click.pass_context
def role_register_consumer(ctx):
    """Register the calling account as a consumer."""
    caller = _caller(ctx)
    with _session(ctx) as hub:
        hub.register_as_consumer(caller)
    console.print(f"[green]{caller} registered as a consumer[/green]")


# Wallet commands
@cli.group()
def wallet():
    """Native currency wallet commands."""
    pass


@wallet.command("deposit")
@click.argument("account")
@click.argument("amount", type=click.IntRange(min=0))
@click.pass_context
def wallet_deposit(ctx, account, amount):
    """Credit AMOUNT to ACCOUNT's wallet."""
    with _session(ctx) as hub:
        hub.deposit(account, amount)
        balance = hub.wallet_balance(account)
    console.print(f"[green]Deposited {amount} to {account} (balance {balance})[/green]")


@wallet.command("balance")
@click.argument("account")
@click.pass_context
def wallet_balance(ctx, account):
    """Show ACCOUNT's wallet balance and token holdings."""
    hub = _load(ctx)
    console.print(f"{account}: {hub.wallet_balance(account)} (holds {hub.balance_of(account)} token(s))")


# Token commands
@cli.group()
def token():
    """Energy token commands."""
    pass


@token.command("create")
@click.option("--type", "energy_type", required=True, help="Energy type, e.g. Solar")
@click.option("--valid-from", required=True, help="Start of validity (unix seconds or ISO datetime)")
@click.option("--valid-to", required=True, help="End of validity (unix seconds or ISO datetime)")
@click.option("--start-time", default="00:00", help="Daily window start (HH:MM or seconds)")
@click.option("--end-time", default="23:59:59", help="Daily window end (HH:MM or seconds)")
@click.option("--amount", "amount_in_kw", type=int, required=True, help="Amount in kW")
@click.option("--uri", "token_uri", default="", help="Token metadata URI")
@click.pass_context
def token_create(ctx, energy_type, valid_from, valid_to, start_time, end_time, amount_in_kw, token_uri):
    """Mint a new energy token (provider only)."""
    args = (
        energy_type,
        parse_timestamp(valid_from),
        parse_timestamp(valid_to),
        parse_time_of_day(start_time),
        parse_time_of_day(end_time),
        amount_in_kw,
        token_uri,
    )
    with _session(ctx) as hub:
        token_id = hub.create_token(*args, sender=_caller(ctx))
    console.print(f"[green]Created token {token_id}[/green]")


def _token_table(title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Type")
    table.add_column("Owner")
    table.add_column("Valid")
    table.add_column("Daily window")
    table.add_column("kW", justify="right")
    table.add_column("Sale", justify="right")
    return table


def _token_row(hub: EnergyTradeHub, token_id: int) -> list[str]:
    t = hub.tokens(token_id)
    sale = hub.token_sales(token_id)
    return [
        str(token_id),
        t.energy_type,
        hub.owner_of(token_id),
        f"{format_timestamp(t.valid_from)} → {format_timestamp(t.valid_to)}",
        f"{format_time_of_day(t.start_time)} - {format_time_of_day(t.end_time)}",
        f"{t.balance_in_kw}/{t.amount_in_kw}",
        f"[green]{sale.price}[/green]" if sale.is_for_sale else "[dim]-[/dim]",
    ]


@token.command("list")
@click.option("--for-sale", is_flag=True, help="Only tokens listed for sale")
@click.option("--owner", help="Only tokens held by this account")
@click.pass_context
def token_list(ctx, for_sale, owner):
    """List existing tokens."""
    hub = _load(ctx)
    token_ids = [t.token_id for t in hub.all_tokens()]
    if for_sale:
        token_ids = [i for i in token_ids if hub.token_sales(i).is_for_sale]
    if owner:
        token_ids = [i for i in token_ids if hub.owner_of(i) == owner]

    if not token_ids:
        console.print("[yellow]No tokens found[/yellow]")
        return

    table = _token_table("Energy Tokens")
    for token_id in token_ids:
        table.add_row(*_token_row(hub, token_id))
    console.print(table)


@token.command("show")
@click.argument("token_id", type=int)
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def token_show(ctx, token_id, as_json):
    """Show a single token."""
    hub = _load(ctx)
    t = hub.get_token(token_id)
    if t is None:
        _fail(f"Token {token_id} does not exist")

    sale = hub.token_sales(token_id)
    if as_json:
        data = {
            "token_id": t.token_id,
            "owner": hub.owner_of(token_id),
            "minted_by": t.owner,
            "energy_type": t.energy_type,
            "valid_from": t.valid_from,
            "valid_to": t.valid_to,
            "start_time": t.start_time,
            "end_time": t.end_time,
            "amount_in_kw": t.amount_in_kw,
            "balance_in_kw": t.balance_in_kw,
            "token_uri": hub.token_uri(token_id),
            "is_for_sale": sale.is_for_sale,
            "price": sale.price,
            "within_valid_period": hub.is_within_valid_period(token_id),
        }
        click.echo(json.dumps(data, indent=2))
        return

    table = _token_table(f"Token {token_id}")
    table.add_row(*_token_row(hub, token_id))
    console.print(table)
    console.print(f"URI: {hub.token_uri(token_id) or '[dim]none[/dim]'}")


@token.command("valid")
@click.argument("token_id", type=int)
@click.pass_context
def token_valid(ctx, token_id):
    """Check whether a token can be redeemed right now."""
    hub = _load(ctx)
    if hub.is_within_valid_period(token_id):
        console.print(f"[green]Token {token_id} is within its validity window[/green]")
    else:
        console.print(f"[yellow]Token {token_id} is outside its validity window[/yellow]")


@token.command("burn")
@click.argument("token_id", type=int)
@click.pass_context
def token_burn(ctx, token_id):
    """Redeem (burn) a token you own (consumer only)."""
    with _session(ctx) as hub:
        hub.burn_token(token_id, _caller(ctx))
    console.print(f"[green]Burned token {token_id}[/green]")


@token.command("transfer")
@click.argument("token_id", type=int)
@click.argument("to")
@click.pass_context
def token_transfer(ctx, token_id, to):
    """Transfer a token to another account."""
    caller = _caller(ctx)
    with _session(ctx) as hub:
        hub.transfer_from(hub.owner_of(token_id), to, token_id, caller)
    console.print(f"[green]Transferred token {token_id} to {to}[/green]")


@token.command("metadata")
@click.argument("token_id", type=int)
@click.pass_context
def token_metadata(ctx, token_id):
    """Fetch the JSON metadata behind a token's URI."""
    settings = ctx.obj["settings"]
    hub = _load(ctx)
    try:
        data = fetch_token_metadata(
            hub.token_uri(token_id),
            timeout=settings.metadata_timeout,
            ipfs_gateway=settings.ipfs_gateway,
        )
    except TradeHubError as e:
        _fail(str(e))
    click.echo(json.dumps(data, indent=2))


# Sale commands
@cli.group()
def sale():
    """Marketplace listing commands."""
    pass


@sale.command("list")
@click.argument("token_id", type=int)
@click.argument("price", type=int)
@click.pass_context
def sale_list(ctx, token_id, price):
    """List a token you own for PRICE."""
    with _session(ctx) as hub:
        hub.list_token_for_sale(token_id, price, _caller(ctx))
    console.print(f"[green]Token {token_id} listed for {price}[/green]")


@sale.command("withdraw")
@click.argument("token_id", type=int)
@click.pass_context
def sale_withdraw(ctx, token_id):
    """Withdraw a token from sale."""
    with _session(ctx) as hub:
        hub.withdraw_token_from_sale(token_id, _caller(ctx))
    console.print(f"[green]Token {token_id} withdrawn from sale[/green]")


@sale.command("buy")
@click.argument("token_id", type=int)
@click.option("--value", type=click.IntRange(min=0), help="Payment to attach (default: listed price)")
@click.pass_context
def sale_buy(ctx, token_id, value):
    """Buy a listed token; the whole payment goes to the seller."""
    caller = _caller(ctx)
    with _session(ctx) as hub:
        if value is None:
            value = hub.token_sales(token_id).price
        hub.buy_token(token_id, caller, value)
    console.print(f"[green]{caller} bought token {token_id} for {value}[/green]")


@cli.command()
@click.option("--name", help="Only events with this name")
@click.option("--limit", default=20, help="Number of most recent events to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def events(ctx, name, limit, as_json):
    """Show the ledger's event log."""
    hub = _load(ctx)
    selected = hub.events(name)[-limit:] if limit else hub.events(name)

    if as_json:
        click.echo(json.dumps([e.to_dict() for e in selected], indent=2))
        return

    if not selected:
        console.print("[yellow]No events found[/yellow]")
        return

    table = Table(title="Events")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Event")
    table.add_column("Arguments")
    for e in selected:
        args = ", ".join(f"{k}={v}" for k, v in e.args.items())
        table.add_row(str(e.seq), e.name, args)
    console.print(table)


if __name__ == "__main__":
    cli()
