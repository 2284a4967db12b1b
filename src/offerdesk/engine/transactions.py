"""Transaction creation, lookup and vendor assignment."""

from __future__ import annotations

from datetime import datetime

from offerdesk import db, store
from offerdesk.documents import deal_terms
from offerdesk.engine.steps import build_steps
from offerdesk.errors import ValidationError
from offerdesk.logging import get_logger
from offerdesk.models import (
    AssignedVendor,
    Offer,
    OfferType,
    Property,
    Transaction,
    Vendor,
    VendorRole,
    utcnow,
)

log = get_logger(__name__)


def open_transaction(c, offer: Offer, prop: Property | None, accepted_at: datetime) -> str:
    """Insert the transaction for an accepted PSA offer on an open connection.

    Keyed on offer_id: a second call returns the existing id untouched.
    """
    existing = store.get_transaction_by_offer(c, offer.id)
    if existing:
        return existing.id

    terms = deal_terms(offer.document)
    seller_id = prop.seller_id if prop else None
    txn = Transaction(
        offer_id=offer.id,
        property_id=offer.property_id,
        offer_type=offer.offer_type,
        buyer_id=offer.buyer_id,
        seller_id=seller_id,
        parties=[p for p in (offer.buyer_id, seller_id) if p],
        offer_amount=terms.offer_amount,
        earnest_money=terms.earnest_money,
        proposed_closing_date=terms.proposed_closing_date,
        financing_type=terms.financing_type,
        contingencies=terms.contingencies,
        accepted_at=accepted_at,
        steps=build_steps(offer, accepted_at),
        created_at=accepted_at,
        updated_at=accepted_at,
    )
    tid, created = store.insert_transaction(c, txn)
    if created:
        db.log(c, tid, "transaction_created", f"offer {offer.id}, {len(txn.steps)} steps")
        log.info("transaction_created", transaction_id=tid, offer_id=offer.id, steps=len(txn.steps))
    return tid


def create_transaction(offer: Offer, prop: Property | None,
                       accepted_at: datetime | None = None) -> str | None:
    """Create the transaction for an accepted offer.

    Returns None for LOI offers (they never enter the transaction center) and
    the existing id when one was already created for this offer.
    """
    if offer.offer_type == OfferType.LOI:
        return None
    with db.conn() as c:
        return open_transaction(c, offer, prop, accepted_at or utcnow())


def get_transaction_by_id(transaction_id: str) -> Transaction:
    with db.conn() as c:
        return store.require_transaction(c, transaction_id)


def get_transaction_by_offer_id(offer_id: str) -> Transaction | None:
    with db.conn() as c:
        return store.get_transaction_by_offer(c, offer_id)


def get_transactions_by_user(user_id: str) -> list[Transaction]:
    """PSA transactions where the user is buyer or seller, newest acceptance first."""
    with db.conn() as c:
        return store.transactions_for_user(c, user_id)


def set_assigned_vendor(transaction_id: str, role: VendorRole | str, vendor_id: str | None) -> None:
    """Assign (or with vendor_id=None, unassign) the single vendor for a role."""
    try:
        role = VendorRole(role)
    except ValueError as e:
        raise ValidationError(f"Unknown vendor role {role!r}", context={"role": role}) from e

    with db.conn() as c:
        txn = store.require_transaction(c, transaction_id)
        assigned = [a for a in txn.assigned_vendors if a.role != role]
        if vendor_id:
            assigned.append(AssignedVendor(role=role, vendor_id=vendor_id))
        txn.assigned_vendors = assigned
        store.update_transaction(c, txn)
        db.log(c, transaction_id, "vendor_assigned", f"{role.value}={vendor_id or '-'}")
    log.info("vendor_assigned", transaction_id=transaction_id, role=role.value, vendor_id=vendor_id)


def resolve_vendors(txn: Transaction) -> list[tuple[VendorRole, Vendor | None]]:
    """Look up display records for each assigned vendor (None if the vendor is gone)."""
    with db.conn() as c:
        return [(a.role, store.get_vendor(c, a.vendor_id)) for a in txn.assigned_vendors]
