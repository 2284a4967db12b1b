"""Offer negotiation state machine.

An offer chain is append-only: a counter never edits the offer it answers,
it inserts a new pending version and flips the original to ``countered``.
Only ``pending`` offers can move. Repeating the transition an offer already
made (accept twice, reject twice) is a no-op; any other move out of a
settled state raises InvalidTransitionError.

Each transition runs inside one ``db.conn()`` block, so the offer status,
the property status and the transaction insert of an accept (or the insert
and status flip of a counter) commit or roll back together.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from pydantic import ValidationError as PydanticValidationError

from offerdesk import db, store
from offerdesk.documents import (
    LoiDocument,
    PsaAgreement,
    default_legacy_terms,
    default_loi,
    parse_document,
)
from offerdesk.engine.expiration import is_offer_expired
from offerdesk.engine.transactions import open_transaction
from offerdesk.errors import (
    InvalidTransitionError,
    PermissionDeniedError,
    StaleWriteError,
    ValidationError,
)
from offerdesk.logging import actor_context, get_logger
from offerdesk.models import Offer, OfferStatus, OfferType, PropertyStatus, utcnow

log = get_logger(__name__)

# Counter-form key -> dotted path inside each document kind
LEGACY_FORM_PATHS: dict[str, str] = {
    "offer_amount": "offer_amount",
    "earnest_money": "earnest_money",
    "earnest_money_due": "earnest_money_due",
    "closing_date": "proposed_closing_date",
    "financing_type": "financing_type",
    "down_payment": "down_payment",
    "seller_concessions": "seller_concessions",
    "inspection_contingency": "contingencies.inspection.included",
    "inspection_days": "contingencies.inspection.days",
    "financing_contingency": "contingencies.financing.included",
    "financing_days": "contingencies.financing.days",
    "appraisal_contingency": "contingencies.appraisal.included",
    "home_sale_contingency": "contingencies.home_sale.included",
    "inclusions": "inclusions",
    "possession": "possession",
}

PSA_FORM_PATHS: dict[str, str] = {
    "offer_amount": "price.amount",
    "earnest_money": "earnest_money.amount",
    "earnest_money_due": "earnest_money.due",
    "closing_date": "closing.closing_date",
    "financing_type": "financing.type",
    "down_payment": "financing.down_payment_percent",
    "seller_concessions": "seller_concessions",
    "inspection_contingency": "contingencies.inspection.included",
    "inspection_days": "contingencies.inspection.days",
    "financing_contingency": "contingencies.financing.included",
    "financing_days": "contingencies.financing.days",
    "appraisal_contingency": "contingencies.appraisal.included",
    "home_sale_contingency": "contingencies.home_sale.included",
    "inclusions": "inclusions",
    "possession": "closing.possession",
}

FORM_PATHS = {"legacy": LEGACY_FORM_PATHS, "psa": PSA_FORM_PATHS}

# Offer-level fields a counter may override; absent ones carry forward
CARRIED_FIELDS = ("message", "offer_expiration_date", "offer_expiration_time")


@contextmanager
def _logged_conflicts(**ids: Any) -> Iterator[None]:
    try:
        yield
    except StaleWriteError:
        log.warning("stale_write", **ids)
        raise


def _validated_offer(data: dict[str, Any]) -> Offer:
    try:
        return Offer.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("invalid offer", context={"errors": e.errors(include_url=False)}) from e


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------

def create_offer(data: dict[str, Any]) -> str:
    """Create a pending offer and return its id.

    ``data`` carries property_id, buyer_id and a ``document`` mapping tagged
    by ``kind``. Without a document the offer_type picks the default shape
    (LOI defaults for ``loi``, flat legacy terms otherwise).
    """
    for key in ("property_id", "buyer_id"):
        value = data.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f"{key} is required", context={"field": key})

    fields = {k: v for k, v in data.items() if k not in ("id", "status", "version", "countered_by_offer_id")}
    raw_doc = fields.get("document")
    if raw_doc is None:
        fields["document"] = default_loi() if fields.get("offer_type") == OfferType.LOI.value else default_legacy_terms()
    else:
        fields["document"] = parse_document(raw_doc)
    fields.setdefault("created_by", data["buyer_id"])
    now = utcnow()
    fields.update(status=OfferStatus.PENDING, created_at=now, updated_at=now)

    offer = _validated_offer(fields)
    with db.conn() as c:
        offer = store.insert_offer(c, offer)
        db.log(c, offer.id, "offer_created", offer.offer_type.value)
    log.info("offer_created", offer_id=offer.id, property_id=offer.property_id,
             buyer_id=offer.buyer_id, offer_type=offer.offer_type.value)
    return offer.id


def get_offer_by_id(offer_id: str) -> Offer:
    with db.conn() as c:
        return store.require_offer(c, offer_id)


def get_offers_by_property(property_id: str) -> list[Offer]:
    with db.conn() as c:
        return store.offers_by_property(c, property_id)


def get_offers_by_buyer(buyer_id: str) -> list[Offer]:
    with db.conn() as c:
        return store.offers_by_buyer(c, buyer_id)


def get_offer_chain(offer_id: str) -> list[Offer]:
    """Every version in the negotiation containing ``offer_id``, oldest first."""
    with db.conn() as c:
        offer = store.require_offer(c, offer_id)
        seen = {offer.id}
        while offer.counter_to_offer_id and offer.counter_to_offer_id not in seen:
            prior = store.get_offer(c, offer.counter_to_offer_id)
            if prior is None:
                break
            seen.add(prior.id)
            offer = prior

        chain = [offer]
        seen = {offer.id}
        while offer.countered_by_offer_id and offer.countered_by_offer_id not in seen:
            nxt = store.get_offer(c, offer.countered_by_offer_id)
            if nxt is None:
                break
            seen.add(nxt.id)
            chain.append(nxt)
            offer = nxt
    return chain


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------

def _is_repeat(offer: Offer, target: OfferStatus) -> bool:
    """True if the offer already made this move; raise if it cannot make it."""
    if offer.status == target:
        return True
    if offer.status != OfferStatus.PENDING:
        raise InvalidTransitionError(
            f"Offer {offer.id} is {offer.status.value}, cannot become {target.value}",
            context={"offer_id": offer.id, "status": offer.status.value, "target": target.value},
        )
    return False


def accept_offer(offer_id: str, accepted_at: datetime | None = None,
                 enforce_expiry: bool = False) -> str | None:
    """Accept a pending offer. Returns the transaction id (None for an LOI).

    For a PSA the property goes under contract and the transaction is
    opened in the same store transaction as the status change.
    """
    with _logged_conflicts(offer_id=offer_id), db.conn() as c:
        offer = store.require_offer(c, offer_id)
        if _is_repeat(offer, OfferStatus.ACCEPTED):
            if offer.offer_type == OfferType.LOI:
                return None
            prop = store.get_property(c, offer.property_id)
            return open_transaction(c, offer, prop, accepted_at or offer.updated_at)

        accepted_at = accepted_at or utcnow()
        if enforce_expiry and is_offer_expired(offer, now=accepted_at):
            raise InvalidTransitionError(f"Offer {offer_id} has expired",
                                         context={"offer_id": offer_id})

        offer = store.set_offer_status(c, offer, OfferStatus.ACCEPTED)
        db.log(c, offer.id, "offer_accepted")
        transaction_id = None
        if offer.offer_type == OfferType.PSA:
            prop = store.require_property(c, offer.property_id)
            if prop.status != PropertyStatus.UNDER_CONTRACT:
                store.set_property_status(c, prop, PropertyStatus.UNDER_CONTRACT)
                db.log(c, prop.id, "property_under_contract", f"offer {offer.id}")
            transaction_id = open_transaction(c, offer, prop, accepted_at)

    log.info("offer_accepted", offer_id=offer_id, offer_type=offer.offer_type.value,
             transaction_id=transaction_id)
    return transaction_id


def _settle(offer_id: str, target: OfferStatus, event: str) -> None:
    with _logged_conflicts(offer_id=offer_id), db.conn() as c:
        offer = store.require_offer(c, offer_id)
        if _is_repeat(offer, target):
            return
        store.set_offer_status(c, offer, target)
        db.log(c, offer_id, event)
    log.info(event, offer_id=offer_id)


def reject_offer(offer_id: str) -> None:
    _settle(offer_id, OfferStatus.REJECTED, "offer_rejected")


def withdraw_offer(offer_id: str) -> None:
    _settle(offer_id, OfferStatus.WITHDRAWN, "offer_withdrawn")


# ---------------------------------------------------------------------------
# Counter offers
# ---------------------------------------------------------------------------

def _set_path(doc: dict, path: str, value: Any) -> None:
    *parents, leaf = path.split(".")
    node = doc
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[leaf] = value


def _get_path(doc: dict, path: str) -> Any:
    node: Any = doc
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
    return node


def _blank_to_none(value: Any) -> Any:
    return None if isinstance(value, str) and not value.strip() else value


def _counter_document(prior, form: dict[str, Any]):
    """Build the full document for a counter version from the prior one."""
    if prior.kind == "loi":
        loi = form.get("loi")
        if not isinstance(loi, (dict, LoiDocument)):
            raise ValidationError("LOI counter requires the full loi form", context={"kind": "loi"})
        if isinstance(loi, LoiDocument):
            return loi.model_copy(deep=True)
        return parse_document({**loi, "kind": "loi"})

    if prior.kind == "psa" and "agreement" in form:
        agreement = form["agreement"]
        if isinstance(agreement, PsaAgreement):
            return agreement.model_copy(deep=True)
        if not isinstance(agreement, dict):
            raise ValidationError("agreement must be a mapping", context={"kind": "psa"})
        return parse_document({**agreement, "kind": "psa"})

    doc = prior.model_dump(mode="json")
    for key, path in FORM_PATHS[prior.kind].items():
        if key in form:
            _set_path(doc, path, _blank_to_none(form[key]))
    return parse_document(doc)


def counter_form_from_offer(offer: Offer) -> dict[str, Any]:
    """Counter form prefilled from the current version of an offer."""
    form: dict[str, Any] = {
        "message": offer.message,
        "offer_expiration_date": offer.offer_expiration_date.isoformat() if offer.offer_expiration_date else None,
        "offer_expiration_time": offer.offer_expiration_time,
    }
    doc = offer.document.model_dump(mode="json")
    if offer.document.kind == "loi":
        doc.pop("kind", None)
        form["loi"] = doc
        return form
    for key, path in FORM_PATHS[offer.document.kind].items():
        form[key] = _get_path(doc, path)
    return form


def counter_offer(original_id: str, form_data: dict[str, Any], actor_id: str) -> str:
    """Answer a pending offer with a new version; returns the new offer id.

    The actor must be the buyer or the property's seller. The new version
    is a complete snapshot of the terms, so it can be read without walking
    the chain.
    """
    with actor_context(actor_id), _logged_conflicts(offer_id=original_id), db.conn() as c:
        original = store.require_offer(c, original_id)
        prop = store.get_property(c, original.property_id)
        seller_id = prop.seller_id if prop else None
        if not actor_id or actor_id not in {original.buyer_id, seller_id}:
            raise PermissionDeniedError(
                f"{actor_id} is not a party to offer {original_id}",
                context={"offer_id": original_id, "actor_id": actor_id},
            )
        if original.status != OfferStatus.PENDING:
            raise InvalidTransitionError(
                f"Offer {original_id} is {original.status.value}, cannot be countered",
                context={"offer_id": original_id, "status": original.status.value},
            )

        now = utcnow()
        data = original.model_dump(exclude={"id", "version", "countered_by_offer_id", "document"})
        for key in CARRIED_FIELDS:
            if key in form_data:
                data[key] = _blank_to_none(form_data[key]) if key != "message" else (form_data[key] or "")
        data.update(
            document=_counter_document(original.document, form_data),
            status=OfferStatus.PENDING,
            counter_to_offer_id=original.id,
            created_by=actor_id,
            created_at=now,
            updated_at=now,
        )
        counter = store.insert_offer(c, _validated_offer(data))
        store.set_offer_status(c, original, OfferStatus.COUNTERED, countered_by_offer_id=counter.id)
        db.log(c, original.id, "offer_countered", f"by {counter.id}")
        db.log(c, counter.id, "offer_created", f"counter to {original.id}")

    log.info("offer_countered", offer_id=original_id, counter_offer_id=counter.id,
             by_seller=actor_id == seller_id)
    return counter.id

