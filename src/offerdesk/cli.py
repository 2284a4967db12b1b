"""offerdesk CLI.

Usage:
    offerdesk property add prop_1 --seller seller_1 --price 450000
    offerdesk offer create offer.yaml
    offerdesk offer list --property prop_1
    offerdesk offer show <offer_id>
    offerdesk offer counter <offer_id> counter.yaml --actor seller_1
    offerdesk offer accept <offer_id>
    offerdesk offer diff <offer_a> <offer_b>
    offerdesk offer chain <offer_id>
    offerdesk txn list buyer_1
    offerdesk txn show <transaction_id>
    offerdesk txn step <transaction_id> inspection
    offerdesk txn vendor <transaction_id> title_company <vendor_id>
    offerdesk draft start <loi_offer_id> --actor buyer_1
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from offerdesk.errors import OfferDeskError
from offerdesk.logging import configure_logging

app = typer.Typer(name="offerdesk", help="Offer negotiation and transaction tracking for real-estate sales")
console = Console()

# Sub-command groups
offer_app = typer.Typer(help="Offers and counter-offers")
property_app = typer.Typer(help="Local property records")
vendor_app = typer.Typer(help="Vendor contacts")
txn_app = typer.Typer(help="Accepted-offer transactions")
draft_app = typer.Typer(help="PSA drafts from an accepted LOI")
app.add_typer(offer_app, name="offer")
app.add_typer(property_app, name="property")
app.add_typer(vendor_app, name="vendor")
app.add_typer(txn_app, name="txn")
app.add_typer(draft_app, name="draft")

STATUS_COLORS = {
    "pending": "yellow",
    "accepted": "green",
    "rejected": "red",
    "withdrawn": "dim",
    "countered": "blue",
}

DUE_COLORS = {"ok": "green", "due_soon": "yellow", "overdue": "red bold"}


@app.callback()
def main(
    json_logs: Optional[bool] = typer.Option(None, "--json-logs/--console-logs", help="Log format"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Override OFFERDESK_LOG_LEVEL"),
):
    """Offer negotiation and transaction tracking."""
    configure_logging(json_output=json_logs, log_level=log_level)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _fail(err: OfferDeskError):
    console.print(f"[red]{type(err).__name__}: {err.message}[/red]")
    raise typer.Exit(1)


def _load_file(path: Path) -> dict[str, Any]:
    """Read a YAML or JSON mapping."""
    if not path.exists():
        console.print(f"[red]File not found: {path}[/red]")
        raise typer.Exit(1)
    text = path.read_text()
    try:
        data = json.loads(text) if path.suffix == ".json" else yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        console.print(f"[red]Could not parse {path}: {e}[/red]")
        raise typer.Exit(1)
    if not isinstance(data, dict):
        console.print(f"[red]{path} must contain a mapping[/red]")
        raise typer.Exit(1)
    return data


def _offer_price(offer) -> str:
    from offerdesk.engine.diff import fmt_money, get_path, normalize

    path = {"loi": "economic_terms.purchase_price", "psa": "price.amount"}.get(offer.document.kind, "offer_amount")
    return normalize(fmt_money, get_path(offer.document.model_dump(), path))


def _status(value: str) -> str:
    color = STATUS_COLORS.get(value, "white")
    return f"[{color}]{value.upper()}[/{color}]"


# ---------------------------------------------------------------------------
# offerdesk offer ...
# ---------------------------------------------------------------------------

@offer_app.command("create")
def offer_create(
    path: Path = typer.Argument(..., help="YAML/JSON file with property_id, buyer_id and document"),
):
    """Create a pending offer from a file."""
    from offerdesk.engine.negotiation import create_offer

    data = _load_file(path)
    try:
        offer_id = create_offer(data)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"[green]Offer created:[/green] {offer_id}")


@offer_app.command("list")
def offer_list(
    property_id: Optional[str] = typer.Option(None, "--property", help="Offers on a property"),
    buyer_id: Optional[str] = typer.Option(None, "--buyer", help="Offers made by a buyer"),
):
    """List offers on a property or by a buyer."""
    from offerdesk.engine.expiration import format_countdown, offer_expiry
    from offerdesk.engine.negotiation import get_offers_by_buyer, get_offers_by_property

    if not property_id and not buyer_id:
        console.print("[red]Pass --property or --buyer.[/red]")
        raise typer.Exit(1)
    try:
        offers = get_offers_by_property(property_id) if property_id else get_offers_by_buyer(buyer_id)
    except OfferDeskError as e:
        _fail(e)
    if not offers:
        console.print("No offers found.")
        return

    table = Table(title=f"Offers — {property_id or buyer_id}")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type")
    table.add_column("Price", justify="right")
    table.add_column("Status")
    table.add_column("Counter to", style="dim")
    table.add_column("Expires")

    for o in offers:
        countdown = format_countdown(offer_expiry(o)) if o.is_pending else None
        table.add_row(
            o.id,
            o.offer_type.value.upper(),
            _offer_price(o),
            _status(o.status.value),
            o.counter_to_offer_id or "",
            (f"[red]{countdown.text}[/red]" if countdown.expired else countdown.text) if countdown else "",
        )

    console.print(table)


@offer_app.command("show")
def offer_show(offer_id: str = typer.Argument(..., help="Offer ID")):
    """Show an offer and its document."""
    from offerdesk.engine.expiration import format_countdown, offer_expiry
    from offerdesk.engine.negotiation import get_offer_by_id

    try:
        offer = get_offer_by_id(offer_id)
    except OfferDeskError as e:
        _fail(e)

    console.print(f"\n[bold]Offer {offer.id}[/bold] ({offer.offer_type.value.upper()})")
    console.print(f"  Property: {offer.property_id}")
    console.print(f"  Buyer: {offer.buyer_name or offer.buyer_id}")
    console.print(f"  Status: {_status(offer.status.value)}")
    console.print(f"  Price: {_offer_price(offer)}")
    if offer.counter_to_offer_id:
        console.print(f"  Counter to: {offer.counter_to_offer_id}")
    if offer.countered_by_offer_id:
        console.print(f"  Countered by: {offer.countered_by_offer_id}")
    if offer.offer_expiration_date:
        console.print(f"  Expires: {format_countdown(offer_expiry(offer)).text}")
    if offer.message:
        console.print(f"  Message: {offer.message}")
    console.print()
    console.print(yaml.safe_dump(offer.document.model_dump(mode="json"), sort_keys=False), markup=False)


def _transition(action, offer_id: str, label: str):
    try:
        result = action(offer_id)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"[green]Offer {offer_id} {label}.[/green]")
    return result


@offer_app.command("accept")
def offer_accept(
    offer_id: str = typer.Argument(..., help="Offer ID"),
    enforce_expiry: bool = typer.Option(False, "--enforce-expiry", help="Refuse an expired offer"),
):
    """Accept a pending offer (opens a transaction for a PSA)."""
    from offerdesk.engine.negotiation import accept_offer

    transaction_id = _transition(lambda oid: accept_offer(oid, enforce_expiry=enforce_expiry),
                                 offer_id, "accepted")
    if transaction_id:
        console.print(f"  Transaction: {transaction_id}")


@offer_app.command("reject")
def offer_reject(offer_id: str = typer.Argument(..., help="Offer ID")):
    """Reject a pending offer."""
    from offerdesk.engine.negotiation import reject_offer

    _transition(reject_offer, offer_id, "rejected")


@offer_app.command("withdraw")
def offer_withdraw(offer_id: str = typer.Argument(..., help="Offer ID")):
    """Withdraw a pending offer."""
    from offerdesk.engine.negotiation import withdraw_offer

    _transition(withdraw_offer, offer_id, "withdrawn")


@offer_app.command("counter")
def offer_counter(
    offer_id: str = typer.Argument(..., help="Offer ID to counter"),
    path: Optional[Path] = typer.Argument(None, help="YAML/JSON counter form (omit to print a prefilled one)"),
    actor: str = typer.Option(..., "--actor", help="Buyer or seller making the counter"),
):
    """Counter a pending offer with new terms."""
    from offerdesk.engine.negotiation import counter_form_from_offer, counter_offer, get_offer_by_id

    try:
        if path is None:
            form = counter_form_from_offer(get_offer_by_id(offer_id))
            console.print(yaml.safe_dump(form, sort_keys=False), markup=False)
            return
        new_id = counter_offer(offer_id, _load_file(path), actor)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"[green]Counter offer created:[/green] {new_id}")
    console.print(f"  Offer {offer_id} is now COUNTERED")


def _print_diff(rows, title: str):
    if not rows:
        console.print("No changes.")
        return
    table = Table(title=title)
    table.add_column("Field", style="bold")
    table.add_column("Original")
    table.add_column("Current")
    for row in rows:
        table.add_row(row.label, row.original, f"[yellow]{row.current}[/yellow]")
    console.print(table)


@offer_app.command("diff")
def offer_diff(
    original_id: str = typer.Argument(..., help="Earlier offer"),
    current_id: str = typer.Argument(..., help="Later offer"),
):
    """Show the fields that changed between two offers."""
    from offerdesk.engine.diff import diff_offers
    from offerdesk.engine.negotiation import get_offer_by_id

    try:
        rows = diff_offers(get_offer_by_id(original_id), get_offer_by_id(current_id))
    except OfferDeskError as e:
        _fail(e)
    _print_diff(rows, f"Changes — {original_id} → {current_id}")


@offer_app.command("chain")
def offer_chain(offer_id: str = typer.Argument(..., help="Any offer in the negotiation")):
    """Show every version of a negotiation, oldest first."""
    from offerdesk.engine.negotiation import get_offer_chain

    try:
        chain = get_offer_chain(offer_id)
    except OfferDeskError as e:
        _fail(e)

    table = Table(title="Negotiation")
    table.add_column("#", justify="right")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("By")
    table.add_column("Price", justify="right")
    table.add_column("Status")
    for i, o in enumerate(chain, 1):
        table.add_row(str(i), o.id, o.created_by or o.buyer_id, _offer_price(o), _status(o.status.value))
    console.print(table)


# ---------------------------------------------------------------------------
# offerdesk property / vendor
# ---------------------------------------------------------------------------

@property_app.command("add")
def property_add(
    property_id: str = typer.Argument(..., help="Property ID"),
    seller: str = typer.Option(..., "--seller", help="Seller user ID"),
    price: Optional[float] = typer.Option(None, "--price", help="List price"),
    address: str = typer.Option("", "--address", help="Street address"),
):
    """Add or update a property record."""
    from offerdesk import db, store
    from offerdesk.models import Property

    with db.conn() as c:
        prop = store.save_property(c, Property(id=property_id, seller_id=seller, price=price, address=address))
    console.print(f"[green]Property saved:[/green] {prop.id} ({prop.status.value})")


@property_app.command("show")
def property_show(property_id: str = typer.Argument(..., help="Property ID")):
    """Show a property record."""
    from offerdesk import db, store

    try:
        with db.conn() as c:
            prop = store.require_property(c, property_id)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"\n[bold]{prop.address or prop.id}[/bold]")
    console.print(f"  ID: {prop.id}")
    console.print(f"  Seller: {prop.seller_id or '—'}")
    console.print(f"  Status: {prop.status.value}")
    if prop.price:
        console.print(f"  Price: ${prop.price:,.0f}")


@vendor_app.command("add")
def vendor_add(
    name: str = typer.Argument(..., help="Contact name"),
    owner: str = typer.Option(..., "--owner", help="User who owns this contact"),
    role: str = typer.Option("other", "--type", help="title_company, inspection_company, mortgage_services, other"),
    company: Optional[str] = typer.Option(None, "--company"),
    phone: Optional[str] = typer.Option(None, "--phone"),
    email: Optional[str] = typer.Option(None, "--email"),
):
    """Add a vendor contact."""
    from offerdesk import db, store
    from offerdesk.models import Vendor, VendorRole

    try:
        vendor_type = VendorRole(role)
    except ValueError:
        console.print(f"[red]Unknown vendor type: {role}[/red]")
        raise typer.Exit(1)
    with db.conn() as c:
        vendor = store.save_vendor(c, Vendor(owner_id=owner, name=name, company=company,
                                             phone=phone, email=email, type=vendor_type))
    console.print(f"[green]Vendor saved:[/green] {vendor.id}")


# ---------------------------------------------------------------------------
# offerdesk txn ...
# ---------------------------------------------------------------------------

@txn_app.command("list")
def txn_list(user_id: str = typer.Argument(..., help="Buyer or seller user ID")):
    """List PSA transactions for a user, newest first."""
    from offerdesk.engine.tracker import summarize
    from offerdesk.engine.transactions import get_transactions_by_user

    try:
        txns = get_transactions_by_user(user_id)
    except OfferDeskError as e:
        _fail(e)
    if not txns:
        console.print("No transactions found.")
        return

    table = Table(title=f"Transactions — {user_id}")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Property")
    table.add_column("Price", justify="right")
    table.add_column("Accepted")
    table.add_column("Steps")
    for t in txns:
        counts = summarize(t.steps)
        done = f"{counts['completed']}/{len(t.steps)} done"
        if counts["overdue"]:
            done += f", [red]{counts['overdue']} overdue[/red]"
        table.add_row(
            t.id,
            t.property_id,
            f"${t.offer_amount:,.0f}" if t.offer_amount else "—",
            t.accepted_at.strftime("%Y-%m-%d"),
            done,
        )
    console.print(table)


@txn_app.command("show")
def txn_show(transaction_id: str = typer.Argument(..., help="Transaction ID")):
    """Show a transaction's steps and vendors."""
    from offerdesk.engine.tracker import get_due_status
    from offerdesk.engine.transactions import get_transaction_by_id, resolve_vendors

    try:
        txn = get_transaction_by_id(transaction_id)
    except OfferDeskError as e:
        _fail(e)

    console.print(f"\n[bold]Transaction {txn.id}[/bold]")
    console.print(f"  Offer: {txn.offer_id}")
    console.print(f"  Property: {txn.property_id}")
    console.print(f"  Buyer: {txn.buyer_id}  Seller: {txn.seller_id or '—'}")
    if txn.offer_amount:
        console.print(f"  Price: ${txn.offer_amount:,.0f}")
    console.print(f"  Accepted: {txn.accepted_at:%Y-%m-%d %H:%M} UTC")

    table = Table(title="Steps")
    table.add_column("ID", style="dim")
    table.add_column("Step")
    table.add_column("Due")
    table.add_column("Status")
    for s in txn.steps:
        due = get_due_status(s)
        if s.completed:
            status = f"[dim]DONE {s.completed_at:%Y-%m-%d}[/dim]" if s.completed_at else "[dim]DONE[/dim]"
        elif due:
            color = DUE_COLORS.get(due.value, "white")
            status = f"[{color}]{due.value.upper()}[/{color}]"
        else:
            status = ""
        table.add_row(s.id, s.title, f"{s.due_at:%Y-%m-%d}" if s.due_at else "TBD", status)
    console.print(table)

    vendors = resolve_vendors(txn)
    if vendors:
        console.print("\n  Vendors:")
        for role, vendor in vendors:
            label = f"{vendor.name} ({vendor.company or vendor.contact or 'no contact'})" if vendor else "[dim]missing[/dim]"
            console.print(f"    {role.value}: {label}")


@txn_app.command("step")
def txn_step(
    transaction_id: str = typer.Argument(..., help="Transaction ID"),
    step_id: str = typer.Argument(..., help="Step ID (e.g., inspection)"),
    undo: bool = typer.Option(False, "--undo", help="Mark the step incomplete"),
):
    """Mark a transaction step complete (or incomplete with --undo)."""
    from offerdesk.engine.tracker import update_step_complete

    try:
        update_step_complete(transaction_id, step_id, not undo)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"[green]Step {step_id} marked {'incomplete' if undo else 'complete'}.[/green]")


@txn_app.command("vendor")
def txn_vendor(
    transaction_id: str = typer.Argument(..., help="Transaction ID"),
    role: str = typer.Argument(..., help="title_company, inspection_company, mortgage_services, other"),
    vendor_id: Optional[str] = typer.Argument(None, help="Vendor ID (omit to unassign)"),
):
    """Assign or unassign the vendor for a role."""
    from offerdesk.engine.transactions import set_assigned_vendor

    try:
        set_assigned_vendor(transaction_id, role, vendor_id)
    except OfferDeskError as e:
        _fail(e)
    if vendor_id:
        console.print(f"[green]{role} assigned:[/green] {vendor_id}")
    else:
        console.print(f"[yellow]{role} unassigned[/yellow]")


# ---------------------------------------------------------------------------
# offerdesk draft ...
# ---------------------------------------------------------------------------

@draft_app.command("start")
def draft_start(
    loi_offer_id: str = typer.Argument(..., help="Accepted LOI offer ID"),
    actor: str = typer.Option(..., "--actor", help="Buyer drafting the PSA"),
):
    """Start a PSA draft from an accepted LOI."""
    from offerdesk.engine.drafts import start_psa_from_loi

    try:
        draft = start_psa_from_loi(loi_offer_id, actor)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"[green]PSA draft created:[/green] {draft.id}")


@draft_app.command("show")
def draft_show(draft_id: str = typer.Argument(..., help="Draft ID")):
    """Show a draft and what it changed relative to its LOI."""
    from offerdesk.engine.drafts import diff_draft_against_loi, get_psa_draft

    try:
        draft = get_psa_draft(draft_id)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"\n[bold]PSA draft {draft.id}[/bold]")
    console.print(f"  Property: {draft.property_id}")
    console.print(f"  Buyer: {draft.buyer_id}")
    console.print(f"  From LOI: {draft.source_loi_offer_id or '—'}")
    console.print()
    console.print(yaml.safe_dump(draft.agreement.model_dump(mode="json"), sort_keys=False), markup=False)
    if draft.source_loi is not None:
        _print_diff(diff_draft_against_loi(draft), "Changes from LOI")


@draft_app.command("submit")
def draft_submit(
    draft_id: str = typer.Argument(..., help="Draft ID"),
    message: str = typer.Option("", "--message", help="Note to the seller"),
):
    """Submit a draft as a PSA offer."""
    from offerdesk.engine.drafts import submit_psa_draft

    try:
        offer_id = submit_psa_draft(draft_id, message=message)
    except OfferDeskError as e:
        _fail(e)
    console.print(f"[green]PSA offer created:[/green] {offer_id}")


if __name__ == "__main__":
    app()
