"""PSA drafts seeded from an accepted LOI.

Once an LOI is accepted the buyer drafts the binding agreement. The draft
keeps a snapshot of the LOI it came from so the changed terms can be
reviewed before the agreement is submitted as a new ``psa`` offer.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from offerdesk import db, store
from offerdesk.documents import convert_loi_to_psa
from offerdesk.engine.diff import DiffRow, diff
from offerdesk.engine.negotiation import create_offer
from offerdesk.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from offerdesk.logging import get_logger
from offerdesk.models import OfferStatus, PsaDraft

log = get_logger(__name__)


def start_psa_from_loi(loi_offer_id: str, actor_id: str) -> PsaDraft:
    """Create a draft agreement from an accepted LOI. Only the buyer may draft."""
    with db.conn() as c:
        offer = store.require_offer(c, loi_offer_id)
        if offer.loi is None:
            raise ValidationError(f"Offer {loi_offer_id} is not an LOI",
                                  context={"offer_id": loi_offer_id, "kind": offer.document.kind})
        if offer.status != OfferStatus.ACCEPTED:
            raise InvalidTransitionError(
                f"LOI {loi_offer_id} is {offer.status.value}; only an accepted LOI can become a PSA",
                context={"offer_id": loi_offer_id, "status": offer.status.value},
            )
        if actor_id != offer.buyer_id:
            raise PermissionDeniedError("Only the buyer can draft the PSA",
                                        context={"offer_id": loi_offer_id, "actor_id": actor_id})
        draft = store.save_draft(c, PsaDraft(
            property_id=offer.property_id,
            buyer_id=offer.buyer_id,
            agreement=convert_loi_to_psa(offer.loi, source_offer_id=offer.id),
            source_loi_offer_id=offer.id,
            source_loi=offer.loi.model_copy(deep=True),
        ))
        db.log(c, draft.id, "draft_started", f"from {offer.id}")
    log.info("psa_draft_started", draft_id=draft.id, loi_offer_id=loi_offer_id)
    return draft


def save_psa_draft(data: PsaDraft | dict[str, Any], draft_id: str | None = None) -> PsaDraft:
    """Insert or overwrite a draft. ``draft_id`` targets an existing one."""
    try:
        draft = data if isinstance(data, PsaDraft) else PsaDraft.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("invalid PSA draft", context={"errors": e.errors(include_url=False)}) from e
    if not draft.property_id.strip() or not draft.buyer_id.strip():
        raise ValidationError("property_id and buyer_id are required")
    if draft_id:
        draft = draft.model_copy(update={"id": draft_id})
    with db.conn() as c:
        draft = store.save_draft(c, draft)
    log.info("psa_draft_saved", draft_id=draft.id)
    return draft


def get_psa_draft(draft_id: str) -> PsaDraft:
    with db.conn() as c:
        draft = store.get_draft(c, draft_id)
    if draft is None:
        raise NotFoundError(f"PSA draft {draft_id} not found", context={"draft_id": draft_id})
    return draft


def get_psa_drafts_by_buyer(buyer_id: str) -> list[PsaDraft]:
    with db.conn() as c:
        return store.drafts_by_buyer(c, buyer_id)


def delete_psa_draft(draft_id: str) -> None:
    with db.conn() as c:
        if not store.delete_draft(c, draft_id):
            raise NotFoundError(f"PSA draft {draft_id} not found", context={"draft_id": draft_id})
    log.info("psa_draft_deleted", draft_id=draft_id)


def submit_psa_draft(draft_id: str, message: str = "",
                     offer_expiration_date: str | None = None,
                     offer_expiration_time: str | None = None) -> str:
    """Submit the draft agreement as a new pending ``psa`` offer."""
    draft = get_psa_draft(draft_id)
    offer_id = create_offer({
        "property_id": draft.property_id,
        "buyer_id": draft.buyer_id,
        "message": message,
        "document": draft.agreement.model_dump(mode="json"),
        "offer_expiration_date": offer_expiration_date,
        "offer_expiration_time": offer_expiration_time,
    })
    log.info("psa_draft_submitted", draft_id=draft_id, offer_id=offer_id)
    return offer_id


def diff_draft_against_loi(draft: PsaDraft) -> list[DiffRow]:
    """What the draft agreement changed relative to the LOI it was seeded from."""
    if draft.source_loi is None:
        raise ValidationError(f"PSA draft {draft.id} has no source LOI", context={"draft_id": draft.id})
    return diff(draft.source_loi, draft.agreement)
