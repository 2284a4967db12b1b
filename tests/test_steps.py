"""Tests for the post-acceptance step generator."""

from datetime import date, datetime, timedelta, timezone

import pytest

from offerdesk.documents import parse_document
from offerdesk.engine.steps import build_steps, closing_instant
from offerdesk.errors import ValidationError
from offerdesk.models import Offer

T = datetime(2026, 3, 2, 17, 30, tzinfo=timezone.utc)


def _offer(document: dict) -> Offer:
    return Offer(id="off_1", property_id="p", buyer_id="b", document=parse_document(document))


def _by_id(steps):
    return {s.id: s for s in steps}


def test_inspection_financing_scenario():
    offer = _offer({
        "kind": "legacy",
        "contingencies": {
            "inspection": {"included": True, "days": 7},
            "financing": {"included": True, "days": 21},
        },
    })
    steps = build_steps(offer, T)

    assert [s.id for s in steps] == ["earnest", "inspection", "financing", "closing"]
    due = {s.id: s.due_at for s in steps}
    assert due["earnest"] == T + timedelta(days=5)
    assert due["inspection"] == T + timedelta(days=7)
    assert due["financing"] == T + timedelta(days=21)
    assert due["closing"] == T + timedelta(days=30)


def test_closing_uses_proposed_date():
    offer = _offer({"kind": "legacy", "proposed_closing_date": "2026-04-15"})
    closing = _by_id(build_steps(offer, T))["closing"]
    assert closing.due_at == datetime(2026, 4, 15, tzinfo=timezone.utc)


def test_default_contingencies_full_schedule():
    steps = build_steps(_offer({"kind": "psa"}), T)
    assert [s.id for s in steps] == ["earnest", "inspection", "financing", "appraisal", "closing"]
    due = {s.id: s.due_at for s in steps}
    assert due["inspection"] == T + timedelta(days=10)
    assert due["financing"] == T + timedelta(days=30)
    # appraisal shares the financing window
    assert due["appraisal"] == due["financing"]


def test_appraisal_without_financing():
    offer = _offer({
        "kind": "psa",
        "contingencies": {"appraisal": {"included": True}, "financing": {"included": False}},
    })
    steps = _by_id(build_steps(offer, T))
    assert "financing" not in steps
    assert steps["appraisal"].due_at == T + timedelta(days=21)


def test_home_sale_due_at_closing():
    offer = _offer({
        "kind": "psa",
        "closing": {"closing_date": "2026-05-20"},
        "contingencies": {"home_sale": {"included": True}},
    })
    steps = build_steps(offer, T)
    ids = [s.id for s in steps]
    assert ids == ["earnest", "home_sale", "closing"]
    assert steps[1].due_at == steps[2].due_at


def test_included_without_days_uses_defaults():
    offer = _offer({
        "kind": "legacy",
        "contingencies": {"inspection": {"included": True}, "financing": {"included": True}},
    })
    due = {s.id: s.due_at for s in build_steps(offer, T)}
    assert due["inspection"] == T + timedelta(days=10)
    assert due["financing"] == T + timedelta(days=30)


def test_steps_start_open_and_required():
    for step in build_steps(_offer({"kind": "psa"}), T):
        assert step.completed is False
        assert step.completed_at is None
        assert step.required is True


def test_deterministic():
    offer = _offer({"kind": "legacy", "offer_amount": 400000})
    assert build_steps(offer, T) == build_steps(offer, T)


@pytest.mark.parametrize("included", [True, False])
def test_inspection_iff_included(included):
    offer = _offer({"kind": "legacy", "contingencies": {"inspection": {"included": included, "days": 5}}})
    ids = [s.id for s in build_steps(offer, T)]
    assert ("inspection" in ids) is included
    assert ids[0] == "earnest" and ids[-1] == "closing"


def test_loi_rejected():
    with pytest.raises(ValidationError):
        build_steps(_offer({"kind": "loi"}), T)


def test_closing_instant_fallback():
    assert closing_instant(None, T) == T + timedelta(days=30)
    assert closing_instant(date(2026, 4, 1), T) == datetime(2026, 4, 1, tzinfo=timezone.utc)
