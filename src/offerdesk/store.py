"""Keyed record access on top of ``offerdesk.db``.

Every function takes an open connection so a caller can group several
reads and writes into one atomic unit. Updates are compare-and-swap on the
row ``version``; a lost race raises StaleWriteError and the surrounding
``db.conn()`` block rolls back.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from uuid import uuid4

from offerdesk.errors import NotFoundError, StaleWriteError
from offerdesk.models import (
    Offer,
    OfferStatus,
    Property,
    PropertyStatus,
    PsaDraft,
    Transaction,
    Vendor,
    utcnow,
)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:12]}"


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _load(model, row):
    data = json.loads(row["data"] or "{}")
    if "version" in row.keys():
        data["version"] = row["version"]
    return model.model_validate(data)


def _check_swap(cur: sqlite3.Cursor, kind: str, rid: str, version: int) -> None:
    if cur.rowcount != 1:
        raise StaleWriteError(
            f"{kind} {rid} changed since it was read",
            context={"kind": kind, "id": rid, "expected_version": version},
        )


# ---------------------------------------------------------------------------
# Offers
# ---------------------------------------------------------------------------

def insert_offer(c, offer: Offer) -> Offer:
    """Insert a new offer version. Offers are never updated except via set_offer_status."""
    if not offer.id:
        offer = offer.model_copy(update={"id": new_id("off")})
    offer = offer.model_copy(update={"version": 0})
    c.execute(
        "INSERT INTO offers(id,property_id,buyer_id,offer_type,status,counter_to_offer_id,"
        "countered_by_offer_id,data,version,created) VALUES(?,?,?,?,?,?,?,?,?,?)",
        (
            offer.id, offer.property_id, offer.buyer_id, offer.offer_type.value,
            offer.status.value, offer.counter_to_offer_id, offer.countered_by_offer_id,
            offer.model_dump_json(exclude={"version"}), 0, _iso(offer.created_at),
        ),
    )
    return offer


def get_offer(c, offer_id: str) -> Offer | None:
    r = c.execute("SELECT * FROM offers WHERE id=?", (offer_id,)).fetchone()
    return _load(Offer, r) if r else None


def require_offer(c, offer_id: str) -> Offer:
    offer = get_offer(c, offer_id)
    if offer is None:
        raise NotFoundError(f"Offer {offer_id} not found", context={"offer_id": offer_id})
    return offer


def offers_by_property(c, property_id: str) -> list[Offer]:
    rows = c.execute("SELECT * FROM offers WHERE property_id=? ORDER BY seq", (property_id,)).fetchall()
    return [_load(Offer, r) for r in rows]


def offers_by_buyer(c, buyer_id: str) -> list[Offer]:
    rows = c.execute("SELECT * FROM offers WHERE buyer_id=? ORDER BY seq", (buyer_id,)).fetchall()
    return [_load(Offer, r) for r in rows]


def set_offer_status(c, offer: Offer, status: OfferStatus,
                     countered_by_offer_id: str | None = None) -> Offer:
    """Move an offer to a new status. Only status and countered_by_offer_id ever change."""
    update = {"status": status, "updated_at": utcnow(), "version": offer.version + 1}
    if countered_by_offer_id is not None:
        update["countered_by_offer_id"] = countered_by_offer_id
    changed = offer.model_copy(update=update)
    cur = c.execute(
        "UPDATE offers SET status=?, countered_by_offer_id=?, data=?, version=version+1"
        " WHERE id=? AND version=?",
        (
            changed.status.value, changed.countered_by_offer_id,
            changed.model_dump_json(exclude={"version"}), offer.id, offer.version,
        ),
    )
    _check_swap(cur, "offer", offer.id, offer.version)
    return changed


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------

def save_property(c, prop: Property) -> Property:
    c.execute(
        "INSERT INTO properties(id,seller_id,status,data,version) VALUES(?,?,?,?,0)"
        " ON CONFLICT(id) DO UPDATE SET seller_id=excluded.seller_id, status=excluded.status,"
        " data=excluded.data, version=properties.version+1",
        (prop.id, prop.seller_id, prop.status.value, prop.model_dump_json(exclude={"version"})),
    )
    return get_property(c, prop.id)


def get_property(c, property_id: str) -> Property | None:
    r = c.execute("SELECT * FROM properties WHERE id=?", (property_id,)).fetchone()
    return _load(Property, r) if r else None


def require_property(c, property_id: str) -> Property:
    prop = get_property(c, property_id)
    if prop is None:
        raise NotFoundError(f"Property {property_id} not found", context={"property_id": property_id})
    return prop


def set_property_status(c, prop: Property, status: PropertyStatus) -> Property:
    changed = prop.model_copy(update={"status": status, "version": prop.version + 1})
    cur = c.execute(
        "UPDATE properties SET status=?, data=?, version=version+1 WHERE id=? AND version=?",
        (status.value, changed.model_dump_json(exclude={"version"}), prop.id, prop.version),
    )
    _check_swap(cur, "property", prop.id, prop.version)
    return changed


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

def insert_transaction(c, txn: Transaction) -> tuple[str, bool]:
    """Insert once per offer_id. Returns (transaction_id, created)."""
    if not txn.id:
        txn = txn.model_copy(update={"id": new_id("tx")})
    try:
        c.execute(
            "INSERT INTO transactions(id,offer_id,property_id,offer_type,parties,accepted_at,data,version)"
            " VALUES(?,?,?,?,?,?,?,0)",
            (
                txn.id, txn.offer_id, txn.property_id, txn.offer_type.value,
                json.dumps(txn.parties), _iso(txn.accepted_at),
                txn.model_dump_json(exclude={"version"}),
            ),
        )
    except sqlite3.IntegrityError:
        existing = get_transaction_by_offer(c, txn.offer_id)
        if existing is None:
            raise
        return existing.id, False
    return txn.id, True


def get_transaction(c, transaction_id: str) -> Transaction | None:
    r = c.execute("SELECT * FROM transactions WHERE id=?", (transaction_id,)).fetchone()
    return _load(Transaction, r) if r else None


def require_transaction(c, transaction_id: str) -> Transaction:
    txn = get_transaction(c, transaction_id)
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found",
                            context={"transaction_id": transaction_id})
    return txn


def get_transaction_by_offer(c, offer_id: str) -> Transaction | None:
    r = c.execute("SELECT * FROM transactions WHERE offer_id=?", (offer_id,)).fetchone()
    return _load(Transaction, r) if r else None


def transactions_for_user(c, user_id: str, limit: int = 100) -> list[Transaction]:
    rows = c.execute(
        "SELECT t.* FROM transactions t"
        " WHERE EXISTS (SELECT 1 FROM json_each(t.parties) WHERE value=?)"
        " AND t.offer_type != 'loi'"
        " ORDER BY t.accepted_at DESC LIMIT ?",
        (user_id, limit),
    ).fetchall()
    return [_load(Transaction, r) for r in rows]


def update_transaction(c, txn: Transaction) -> Transaction:
    """Whole-document replace of a transaction, guarded by its version."""
    changed = txn.model_copy(update={"updated_at": utcnow(), "version": txn.version + 1})
    cur = c.execute(
        "UPDATE transactions SET data=?, version=version+1 WHERE id=? AND version=?",
        (changed.model_dump_json(exclude={"version"}), txn.id, txn.version),
    )
    _check_swap(cur, "transaction", txn.id, txn.version)
    return changed


# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------

def save_vendor(c, vendor: Vendor) -> Vendor:
    if not vendor.id:
        vendor = vendor.model_copy(update={"id": new_id("ven")})
    c.execute(
        "INSERT OR REPLACE INTO vendors(id,owner_id,type,data) VALUES(?,?,?,?)",
        (vendor.id, vendor.owner_id, vendor.type.value, vendor.model_dump_json()),
    )
    return vendor


def get_vendor(c, vendor_id: str) -> Vendor | None:
    r = c.execute("SELECT * FROM vendors WHERE id=?", (vendor_id,)).fetchone()
    return _load(Vendor, r) if r else None


# ---------------------------------------------------------------------------
# PSA drafts
# ---------------------------------------------------------------------------

def save_draft(c, draft: PsaDraft) -> PsaDraft:
    if not draft.id:
        draft = draft.model_copy(update={"id": new_id("psa")})
    draft = draft.model_copy(update={"updated_at": utcnow()})
    c.execute(
        "INSERT OR REPLACE INTO psa_drafts(id,property_id,buyer_id,source_loi_offer_id,data,updated)"
        " VALUES(?,?,?,?,?,?)",
        (
            draft.id, draft.property_id, draft.buyer_id, draft.source_loi_offer_id,
            draft.model_dump_json(), _iso(draft.updated_at),
        ),
    )
    return draft


def get_draft(c, draft_id: str) -> PsaDraft | None:
    r = c.execute("SELECT * FROM psa_drafts WHERE id=?", (draft_id,)).fetchone()
    return _load(PsaDraft, r) if r else None


def drafts_by_buyer(c, buyer_id: str, limit: int = 50) -> list[PsaDraft]:
    rows = c.execute(
        "SELECT * FROM psa_drafts WHERE buyer_id=? ORDER BY updated DESC LIMIT ?", (buyer_id, limit)
    ).fetchall()
    return [_load(PsaDraft, r) for r in rows]


def delete_draft(c, draft_id: str) -> bool:
    cur = c.execute("DELETE FROM psa_drafts WHERE id=?", (draft_id,))
    return cur.rowcount > 0
