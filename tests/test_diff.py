"""Tests for the changed-fields report."""

import pytest

from offerdesk.documents import (
    LoiDocument,
    PsaAgreement,
    convert_loi_to_psa,
    default_legacy_terms,
    default_loi,
    default_psa,
    parse_document,
)
from offerdesk.engine.diff import (
    DiffRow,
    diff,
    fmt_concession,
    fmt_contingency,
    fmt_date,
    fmt_money,
    normalize,
)
from offerdesk.errors import ValidationError


def _loi(**econ) -> LoiDocument:
    return LoiDocument.model_validate({"economic_terms": econ, "timeline": {"closing_date": "2026-03-05"}})


class TestIdentity:
    @pytest.mark.parametrize("doc", [default_loi(), default_psa(), default_legacy_terms()])
    def test_same_document_is_empty(self, doc):
        assert diff(doc, doc) == []

    def test_deep_copy_is_empty(self):
        loi = _loi(purchase_price=450000)
        assert diff(loi, loi.model_copy(deep=True)) == []

    def test_loi_against_converted_psa_is_empty(self):
        loi = LoiDocument.model_validate({
            "parties": {"buyer_name": "Pat", "seller_name": "Sam"},
            "economic_terms": {"purchase_price": 450000, "earnest_money": 5000,
                               "seller_concessions": {"type": "percent", "value": 2}},
            "financing": {"type": "va", "financing_days": 25},
            "condition_of_sale": {"inspection_days": 8},
        })
        assert diff(loi, convert_loi_to_psa(loi)) == []
        assert diff(convert_loi_to_psa(loi), loi) == []


class TestSuppression:
    def test_price_change_single_row(self):
        rows = diff(_loi(purchase_price=450000), _loi(purchase_price=440000))
        assert rows == [DiffRow("Purchase price", "$450,000", "$440,000")]

    def test_equal_after_normalization(self):
        a = parse_document({"kind": "legacy", "offer_amount": 450000})
        b = {"kind": "legacy", "offer_amount": "$450,000.00", "financing_type": "conventional",
             "contingencies": default_legacy_terms().contingencies.model_dump()}
        assert diff(a, b) == []

    def test_set_from_nothing(self):
        rows = diff(_loi(), _loi(earnest_money=7500))
        assert rows == [DiffRow("Earnest money", "—", "$7,500")]

    def test_cleared_to_nothing(self):
        a = default_psa().model_copy(update={"inclusions": "Washer, dryer"})
        rows = diff(a, default_psa())
        assert rows == [DiffRow("Inclusions", "Washer, dryer", "—")]

    def test_rows_in_significance_order(self):
        a = _loi(purchase_price=450000, earnest_money=5000)
        b = a.model_copy(deep=True)
        b.economic_terms.purchase_price = 460000
        b.legal.governing_law = "California"
        b.condition_of_sale.as_is = True
        labels = [r.label for r in diff(a, b)]
        assert labels == ["Purchase price", "Sold as-is", "Governing law"]

    def test_psa_contingency_composite(self):
        a = default_psa()
        b = a.model_copy(deep=True)
        b.contingencies.inspection.days = 14
        b.contingencies.home_sale.included = True
        rows = {r.label: r for r in diff(a, b)}
        assert rows["Inspection contingency"].original == "Yes (10 days)"
        assert rows["Inspection contingency"].current == "Yes (14 days)"
        assert rows["Home sale contingency"].original == "No"
        assert rows["Home sale contingency"].current == "Yes"

    def test_cross_variant_reports_edits(self):
        loi = _loi(purchase_price=450000)
        psa = convert_loi_to_psa(loi)
        psa.price.amount = 455000
        psa.closing.title_company = "First American"
        rows = diff(loi, psa)
        assert rows == [DiffRow("Purchase price", "$450,000", "$455,000")]


class TestMalformed:
    def test_raw_drafts_never_raise(self):
        a = {"kind": "legacy", "offer_amount": "lots", "proposed_closing_date": "someday",
             "contingencies": "none"}
        b = {"kind": "legacy", "offer_amount": None, "proposed_closing_date": None}
        rows = {r.label: r for r in diff(a, b)}
        assert rows["Offer amount"] == DiffRow("Offer amount", "lots", "—")
        assert "Proposed closing date" not in rows

    def test_untagged_drafts_read_by_shape(self):
        a = {"economic_terms": {"purchase_price": 1}}
        b = {"economic_terms": {"purchase_price": 2}}
        assert diff(a, b) == [DiffRow("Purchase price", "$1", "$2")]

    def test_untagged_side_borrows_kind(self):
        draft = {"economic_terms": {"purchase_price": 490000}}
        rows = diff(draft, {"kind": "loi", "economic_terms": {"purchase_price": 500000}})
        assert rows == [DiffRow("Purchase price", "$490,000", "$500,000")]

    def test_missing_side_diffs_as_empty(self):
        rows = diff(None, {"kind": "loi", "economic_terms": {"purchase_price": 475000}})
        assert rows == [DiffRow("Purchase price", "—", "$475,000")]
        assert diff({"kind": "psa"}, "garbage") == []
        assert diff(None, None) == []

    @pytest.mark.parametrize("a,b", [
        ({"kind": "legacy"}, {"kind": "loi"}),
        ({"kind": "psa"}, {"kind": "legacy"}),
        ({"kind": "lease"}, {"kind": "lease"}),
    ])
    def test_unsupported_pairing(self, a, b):
        with pytest.raises(ValidationError):
            diff(a, b)


class TestNormalizers:
    def test_money(self):
        assert fmt_money(450000) == "$450,000"
        assert fmt_money(1234.4) == "$1,234"
        assert fmt_money("$450,000.75") == "$450,001"
        assert fmt_money(None) == "—"

    def test_date(self):
        assert fmt_date("2026-03-05") == "March 5, 2026"
        assert fmt_date("not a date") == "—"

    def test_concession(self):
        assert fmt_concession({"type": "none"}) == "None"
        assert fmt_concession({"type": "amount", "value": 5000}) == "$5,000"
        assert fmt_concession({"type": "percent", "value": 3}) == "3% of price"
        assert fmt_concession(None) == "—"

    def test_contingency(self):
        assert fmt_contingency({"included": True, "days": 1}) == "Yes (1 day)"
        assert fmt_contingency({"included": True}) == "Yes"
        assert fmt_contingency({"included": False, "days": 10}) == "No"

    def test_normalize_falls_back_to_text(self):
        assert normalize(fmt_money, "abc") == "abc"
        assert normalize(fmt_money, float("inf")) == "inf"
