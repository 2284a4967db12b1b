"""Transaction step generator.

Derives the post-acceptance obligation schedule from an accepted PSA offer.
``build_steps`` is a pure function of (offer, accepted_at): it never samples
the clock or reads the store, so the same inputs always give the same list.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from offerdesk.documents import deal_terms
from offerdesk.errors import ValidationError
from offerdesk.models import Offer, OfferType, Step

EARNEST_MONEY_DAYS = 5
DEFAULT_INSPECTION_DAYS = 10
DEFAULT_FINANCING_DAYS = 30
APPRAISAL_WITHOUT_FINANCING_DAYS = 21
DEFAULT_CLOSING_DAYS = 30


def add_calendar_days(start: datetime, days: int) -> datetime:
    """Add calendar days."""
    return start + timedelta(days=days)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def closing_instant(closing: date | datetime | None, accepted_at: datetime) -> datetime:
    """Closing date as an instant: midnight in accepted_at's zone, or acceptance + 30 days."""
    if isinstance(closing, datetime):
        return _aware(closing)
    if isinstance(closing, date):
        return datetime.combine(closing, time(0, 0), tzinfo=accepted_at.tzinfo)
    return add_calendar_days(accepted_at, DEFAULT_CLOSING_DAYS)


def _step(step_id: str, title: str, due_at: datetime) -> Step:
    return Step(id=step_id, title=title, due_at=due_at, completed=False, completed_at=None, required=True)


def build_steps(offer: Offer, accepted_at: datetime) -> list[Step]:
    """Build the ordered step list for an accepted PSA offer.

    earnest and closing are always present; inspection, financing, appraisal
    and home_sale follow the offer's contingencies.
    """
    if offer.offer_type == OfferType.LOI:
        raise ValidationError("LOI offers do not produce a transaction schedule",
                              context={"offer_id": offer.id})

    accepted_at = _aware(accepted_at)
    terms = deal_terms(offer.document)
    c = terms.contingencies
    closing = closing_instant(terms.proposed_closing_date, accepted_at)

    steps = [
        _step("earnest", "Submit earnest money deposit",
              add_calendar_days(accepted_at, EARNEST_MONEY_DAYS)),
    ]

    if c.inspection.included:
        steps.append(_step("inspection", "Schedule & complete inspection",
                           add_calendar_days(accepted_at, c.inspection.days or DEFAULT_INSPECTION_DAYS)))

    financing_days = c.financing.days or DEFAULT_FINANCING_DAYS
    if c.financing.included:
        steps.append(_step("financing", "Obtain financing approval",
                           add_calendar_days(accepted_at, financing_days)))

    if c.appraisal.included:
        # Appraisal rides on the lender's timeline when financing is contingent
        days = financing_days if c.financing.included else APPRAISAL_WITHOUT_FINANCING_DAYS
        steps.append(_step("appraisal", "Complete appraisal", add_calendar_days(accepted_at, days)))

    if c.home_sale.included:
        steps.append(_step("home_sale", "Close on sale of buyer's current home", closing))

    steps.append(_step("closing", "Closing", closing))
    return steps
