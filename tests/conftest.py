"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path through the
OFFERDESK_DATA_DIR environment variable, so tests never share state.
"""

from datetime import date, datetime, timezone

import pytest

from offerdesk import db, store
from offerdesk.models import Property

BUYER = "buyer_1"
SELLER = "seller_1"
PROPERTY = "prop_1"


@pytest.fixture(autouse=True)
def isolated_store(tmp_path, monkeypatch):
    monkeypatch.setenv("OFFERDESK_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("OFFERDESK_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("OFFERDESK_TIMEZONE", "America/Los_Angeles")
    return tmp_path


@pytest.fixture
def listed_property() -> Property:
    with db.conn() as c:
        return store.save_property(c, Property(id=PROPERTY, seller_id=SELLER, price=500000,
                                               address="12 Elm St, Springfield"))


@pytest.fixture
def accepted_at() -> datetime:
    return datetime(2026, 3, 2, 17, 30, tzinfo=timezone.utc)


def legacy_offer_data(**terms) -> dict:
    document = {
        "kind": "legacy",
        "offer_amount": 480000,
        "earnest_money": 10000,
        "proposed_closing_date": date(2026, 4, 15).isoformat(),
        "financing_type": "conventional",
    }
    document.update(terms)
    return {
        "property_id": PROPERTY,
        "buyer_id": BUYER,
        "buyer_name": "Pat Buyer",
        "message": "Love the porch",
        "document": document,
    }


def loi_offer_data(price: float = 475000) -> dict:
    return {
        "property_id": PROPERTY,
        "buyer_id": BUYER,
        "offer_type": "loi",
        "document": {
            "kind": "loi",
            "parties": {"buyer_name": "Pat Buyer", "seller_name": "Sam Seller"},
            "property": {"address": "12 Elm St, Springfield"},
            "economic_terms": {"purchase_price": price, "earnest_money": 5000},
            "timeline": {"closing_date": "2026-05-01"},
        },
    }


@pytest.fixture
def legacy_data():
    return legacy_offer_data


@pytest.fixture
def loi_data():
    return loi_offer_data
