"""Tests for the offer state machine and counter-offer chains."""

from datetime import date, datetime, timezone

import pytest

from offerdesk import db, store
from offerdesk.engine.negotiation import (
    accept_offer,
    counter_form_from_offer,
    counter_offer,
    create_offer,
    get_offer_by_id,
    get_offer_chain,
    get_offers_by_buyer,
    get_offers_by_property,
    reject_offer,
    withdraw_offer,
)
from offerdesk.engine.transactions import get_transaction_by_offer_id
from offerdesk.errors import (
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StaleWriteError,
    ValidationError,
)
from offerdesk.models import OfferStatus, OfferType, PropertyStatus


def _property_status(property_id="prop_1"):
    with db.conn() as c:
        return store.require_property(c, property_id).status


class TestCreate:
    def test_creates_pending(self, listed_property, legacy_data):
        offer = get_offer_by_id(create_offer(legacy_data()))
        assert offer.status == OfferStatus.PENDING
        assert offer.offer_type == OfferType.PSA
        assert offer.created_by == "buyer_1"
        assert offer.document.offer_amount == 480000
        assert offer.created_at.tzinfo is not None

    def test_loi_type_from_document(self, listed_property, loi_data):
        offer = get_offer_by_id(create_offer(loi_data()))
        assert offer.offer_type == OfferType.LOI
        assert offer.loi.economic_terms.purchase_price == 475000

    @pytest.mark.parametrize("missing", ["property_id", "buyer_id"])
    def test_requires_ids(self, legacy_data, missing):
        data = legacy_data()
        data[missing] = "  "
        with pytest.raises(ValidationError):
            create_offer(data)

    def test_rejects_invalid_document(self, legacy_data):
        data = legacy_data()
        data["document"] = {"kind": "legacy", "offer_amount": "a lot"}
        with pytest.raises(ValidationError):
            create_offer(data)

    def test_rejects_type_mismatch(self, loi_data):
        data = loi_data()
        data["offer_type"] = "psa"
        with pytest.raises(ValidationError):
            create_offer(data)

    def test_status_cannot_be_injected(self, legacy_data):
        data = legacy_data()
        data["status"] = "accepted"
        assert get_offer_by_id(create_offer(data)).status == OfferStatus.PENDING

    def test_missing_offer(self):
        with pytest.raises(NotFoundError):
            get_offer_by_id("off_missing")

    def test_lists_in_creation_order(self, legacy_data):
        ids = [create_offer(legacy_data(offer_amount=amount)) for amount in (1, 2, 3)]
        assert [o.id for o in get_offers_by_property("prop_1")] == ids
        assert [o.id for o in get_offers_by_buyer("buyer_1")] == ids
        assert get_offers_by_buyer("someone_else") == []


class TestAccept:
    def test_psa_accept_opens_transaction(self, listed_property, legacy_data):
        offer_id = create_offer(legacy_data())
        at = datetime(2026, 3, 2, 17, 0, tzinfo=timezone.utc)
        transaction_id = accept_offer(offer_id, accepted_at=at)

        assert get_offer_by_id(offer_id).status == OfferStatus.ACCEPTED
        assert _property_status() == PropertyStatus.UNDER_CONTRACT
        txn = get_transaction_by_offer_id(offer_id)
        assert txn.id == transaction_id
        assert txn.accepted_at == at
        assert txn.parties == ["buyer_1", "seller_1"]
        assert txn.offer_amount == 480000

    def test_loi_accept_is_informational(self, listed_property, loi_data):
        offer_id = create_offer(loi_data())
        assert accept_offer(offer_id) is None
        assert get_offer_by_id(offer_id).status == OfferStatus.ACCEPTED
        assert _property_status() == PropertyStatus.ACTIVE
        assert get_transaction_by_offer_id(offer_id) is None

    def test_repeat_accept_keeps_one_transaction(self, listed_property, legacy_data):
        offer_id = create_offer(legacy_data())
        first = accept_offer(offer_id)
        before = get_transaction_by_offer_id(offer_id)
        assert accept_offer(offer_id) == first
        assert get_transaction_by_offer_id(offer_id).steps == before.steps

    def test_missing_property_rolls_back(self, legacy_data):
        offer_id = create_offer(legacy_data())
        with pytest.raises(NotFoundError):
            accept_offer(offer_id)
        assert get_offer_by_id(offer_id).status == OfferStatus.PENDING
        assert get_transaction_by_offer_id(offer_id) is None

    def test_enforce_expiry(self, listed_property, legacy_data):
        data = legacy_data()
        data["offer_expiration_date"] = "2026-03-01"
        offer_id = create_offer(data)
        late = datetime(2026, 3, 3, tzinfo=timezone.utc)
        with pytest.raises(InvalidTransitionError):
            accept_offer(offer_id, accepted_at=late, enforce_expiry=True)
        # advisory unless enforced
        assert accept_offer(offer_id, accepted_at=late) is not None

    def test_cannot_accept_rejected(self, listed_property, legacy_data):
        offer_id = create_offer(legacy_data())
        reject_offer(offer_id)
        with pytest.raises(InvalidTransitionError):
            accept_offer(offer_id)


class TestSettle:
    def test_reject_and_withdraw(self, legacy_data):
        a, b = create_offer(legacy_data()), create_offer(legacy_data())
        reject_offer(a)
        withdraw_offer(b)
        assert get_offer_by_id(a).status == OfferStatus.REJECTED
        assert get_offer_by_id(b).status == OfferStatus.WITHDRAWN

    def test_repeat_is_noop(self, legacy_data):
        offer_id = create_offer(legacy_data())
        reject_offer(offer_id)
        version = get_offer_by_id(offer_id).version
        reject_offer(offer_id)
        assert get_offer_by_id(offer_id).version == version

    def test_withdraw_after_reject_conflicts(self, legacy_data):
        offer_id = create_offer(legacy_data())
        reject_offer(offer_id)
        with pytest.raises(InvalidTransitionError):
            withdraw_offer(offer_id)

    def test_only_status_changes(self, legacy_data):
        offer_id = create_offer(legacy_data())
        before = get_offer_by_id(offer_id)
        withdraw_offer(offer_id)
        after = get_offer_by_id(offer_id)
        ignored = {"status", "updated_at", "version"}
        assert before.model_dump(exclude=ignored) == after.model_dump(exclude=ignored)


class TestCounter:
    def test_seller_counters(self, listed_property, legacy_data):
        a = create_offer(legacy_data())
        a2 = counter_offer(a, {"offer_amount": 495000}, "seller_1")

        original, counter = get_offer_by_id(a), get_offer_by_id(a2)
        assert counter.counter_to_offer_id == a
        assert counter.created_by == "seller_1"
        assert counter.buyer_id == "buyer_1"
        assert counter.status == OfferStatus.PENDING
        assert original.status == OfferStatus.COUNTERED
        assert original.countered_by_offer_id == a2

    def test_legacy_counter_carries_unchanged_terms(self, listed_property, legacy_data):
        a = create_offer(legacy_data(inclusions="Fridge"))
        a2 = counter_offer(a, {"offer_amount": 495000, "inspection_days": 5}, "seller_1")
        doc = get_offer_by_id(a2).document
        assert doc.offer_amount == 495000
        assert doc.contingencies.inspection.days == 5
        assert doc.earnest_money == 10000
        assert doc.inclusions == "Fridge"
        assert doc.proposed_closing_date == date(2026, 4, 15)
        assert get_offer_by_id(a2).message == "Love the porch"

    def test_structured_psa_counter_preserves_fields(self, listed_property):
        a = create_offer({
            "property_id": "prop_1",
            "buyer_id": "buyer_1",
            "document": {
                "kind": "psa",
                "price": {"amount": 500000},
                "closing": {"title_company": "First American"},
                "exclusions": "Chandelier",
            },
        })
        a2 = counter_offer(a, {"offer_amount": 510000, "closing_date": "2026-06-01"}, "seller_1")
        agreement = get_offer_by_id(a2).agreement
        assert agreement.price.amount == 510000
        assert agreement.closing.closing_date == date(2026, 6, 1)
        assert agreement.closing.title_company == "First American"
        assert agreement.exclusions == "Chandelier"

    def test_loi_counter_replaces_document(self, listed_property, loi_data):
        a = create_offer(loi_data())
        a2 = counter_offer(a, {"loi": {"economic_terms": {"purchase_price": 490000}}}, "seller_1")
        loi = get_offer_by_id(a2).loi
        assert loi.economic_terms.purchase_price == 490000
        # omitted sections fall back to defaults rather than the prior version
        assert loi.economic_terms.earnest_money is None
        assert loi.parties.buyer_name == ""

    def test_loi_counter_from_prefilled_form(self, listed_property, loi_data):
        a = create_offer(loi_data())
        form = counter_form_from_offer(get_offer_by_id(a))
        form["loi"]["economic_terms"]["purchase_price"] = 490000
        loi = get_offer_by_id(counter_offer(a, form, "buyer_1")).loi
        assert loi.economic_terms.purchase_price == 490000
        assert loi.economic_terms.earnest_money == 5000
        assert loi.parties.seller_name == "Sam Seller"

    def test_loi_counter_requires_form(self, listed_property, loi_data):
        a = create_offer(loi_data())
        with pytest.raises(ValidationError):
            counter_offer(a, {"message": "lower please"}, "seller_1")
        assert get_offer_by_id(a).status == OfferStatus.PENDING

    def test_non_party_denied(self, listed_property, legacy_data):
        a = create_offer(legacy_data())
        with pytest.raises(PermissionDeniedError):
            counter_offer(a, {"offer_amount": 1}, "stranger")
        assert get_offer_by_id(a).status == OfferStatus.PENDING
        assert len(get_offers_by_property("prop_1")) == 1

    def test_cannot_counter_settled_offer(self, listed_property, legacy_data):
        a = create_offer(legacy_data())
        reject_offer(a)
        with pytest.raises(InvalidTransitionError):
            counter_offer(a, {"offer_amount": 1}, "seller_1")

    def test_cannot_counter_twice(self, listed_property, legacy_data):
        a = create_offer(legacy_data())
        counter_offer(a, {"offer_amount": 495000}, "seller_1")
        with pytest.raises(InvalidTransitionError):
            counter_offer(a, {"offer_amount": 490000}, "buyer_1")

    def test_counter_form_prefill(self, listed_property, legacy_data):
        form = counter_form_from_offer(get_offer_by_id(create_offer(legacy_data())))
        assert form["offer_amount"] == 480000
        assert form["closing_date"] == "2026-04-15"
        assert form["inspection_contingency"] is True
        assert form["message"] == "Love the porch"


class TestStaleWrites:
    def test_late_counter_rolls_back(self, listed_property, legacy_data):
        a = create_offer(legacy_data())
        stale = get_offer_by_id(a)
        winner = counter_offer(a, {"offer_amount": 495000}, "seller_1")

        late = stale.model_copy(update={"id": "", "counter_to_offer_id": a, "created_by": "buyer_1"})
        with pytest.raises(StaleWriteError):
            with db.conn() as c:
                inserted = store.insert_offer(c, late)
                store.set_offer_status(c, stale, OfferStatus.COUNTERED, countered_by_offer_id=inserted.id)

        assert len(get_offers_by_property("prop_1")) == 2
        assert get_offer_by_id(a).countered_by_offer_id == winner

    def test_late_accept_rolls_back(self, listed_property, legacy_data):
        a = create_offer(legacy_data())
        stale = get_offer_by_id(a)
        reject_offer(a)

        with pytest.raises(StaleWriteError):
            with db.conn() as c:
                store.set_property_status(c, store.require_property(c, "prop_1"), PropertyStatus.UNDER_CONTRACT)
                store.set_offer_status(c, stale, OfferStatus.ACCEPTED)

        assert get_offer_by_id(a).status == OfferStatus.REJECTED
        assert _property_status() == PropertyStatus.ACTIVE
        assert get_transaction_by_offer_id(a) is None


def test_chain_follows_both_directions(listed_property, legacy_data):
    a = create_offer(legacy_data())
    b = counter_offer(a, {"offer_amount": 495000}, "seller_1")
    c = counter_offer(b, {"offer_amount": 488000}, "buyer_1")
    accept_offer(c)

    for member in (a, b, c):
        assert [o.id for o in get_offer_chain(member)] == [a, b, c]
    statuses = [o.status for o in get_offer_chain(a)]
    assert statuses == [OfferStatus.COUNTERED, OfferStatus.COUNTERED, OfferStatus.ACCEPTED]
