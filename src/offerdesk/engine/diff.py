"""Changed-fields report between two offer documents.

Each supported pairing has its own hand-written field table, listed in
negotiation-significance order. Values are normalized to display strings
before comparing, so "set from nothing" and "cleared to nothing" both show
up (absent values render as the placeholder). The engine works on pydantic
documents or raw draft dicts and never raises on malformed or partial input:
a missing side diffs as empty and an untagged draft takes its kind from
its shape or from the other side. Only a pairing of tagged kinds with no
field table raises.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel

from offerdesk.errors import ValidationError
from offerdesk.models import Offer

PLACEHOLDER = "—"


@dataclass(frozen=True)
class DiffRow:
    label: str
    original: str
    current: str


# ---------------------------------------------------------------------------
# Normalizers
# ---------------------------------------------------------------------------

def _plain(v: Any) -> Any:
    return v.value if isinstance(v, Enum) else v


def _blank(v: Any) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


def fmt_text(v: Any) -> str:
    v = _plain(v)
    if _blank(v):
        return PLACEHOLDER
    return str(v).strip()


def _number(v: Any) -> float:
    if isinstance(v, bool):
        raise TypeError("boolean is not a number")
    if isinstance(v, (int, float)):
        n = float(v)
    else:
        n = float(str(v).replace("$", "").replace(",", "").replace("%", "").strip())
    if not math.isfinite(n):
        raise ValueError(f"not a finite number: {v!r}")
    return n


def fmt_money(v: Any) -> str:
    if _blank(v):
        return PLACEHOLDER
    return f"${_number(v):,.0f}"


def fmt_percent(v: Any) -> str:
    if _blank(v):
        return PLACEHOLDER
    return f"{_number(v):g}%"


def fmt_days(v: Any) -> str:
    if _blank(v):
        return PLACEHOLDER
    n = int(_number(v))
    return "1 day" if n == 1 else f"{n} days"


def _to_date(v: Any) -> date | None:
    if isinstance(v, datetime):
        return v.date()
    if isinstance(v, date):
        return v
    if isinstance(v, str) and v.strip():
        try:
            return date.fromisoformat(v.strip()[:10])
        except ValueError:
            return None
    return None


def fmt_date(v: Any) -> str:
    d = _to_date(v)
    if d is None:
        return PLACEHOLDER
    return f"{d:%B} {d.day}, {d.year}"


_TRUE = {"true", "yes", "y", "1", "on"}
_FALSE = {"false", "no", "n", "0", "off"}


def fmt_bool(v: Any) -> str:
    if isinstance(v, bool):
        return "Yes" if v else "No"
    if _blank(v):
        return PLACEHOLDER
    s = str(v).strip().lower()
    if s in _TRUE:
        return "Yes"
    if s in _FALSE:
        return "No"
    return fmt_text(v)


def fmt_contingency(v: Any) -> str:
    """{included, days} → "Yes (10 days)" / "Yes" / "No"."""
    if not isinstance(v, dict):
        return PLACEHOLDER if _blank(v) else fmt_bool(v)
    if fmt_bool(v.get("included")) != "Yes":
        return "No"
    days = v.get("days")
    return f"Yes ({fmt_days(days)})" if not _blank(days) else "Yes"


def fmt_concession(v: Any) -> str:
    """{type, value} → "$5,000", "3% of price" or "None"."""
    if not isinstance(v, dict):
        return PLACEHOLDER if _blank(v) else fmt_text(v)
    kind = _plain(v.get("type")) or "none"
    value = v.get("value")
    if kind == "none":
        return "None"
    if kind == "percent":
        return f"{fmt_percent(value)} of price" if not _blank(value) else PLACEHOLDER
    if kind == "amount":
        return fmt_money(value)
    return f"{fmt_text(kind)}: {fmt_text(value)}"


def _labelled(labels: dict[str, str]) -> Callable[[Any], str]:
    def fmt(v: Any) -> str:
        v = _plain(v)
        if _blank(v):
            return PLACEHOLDER
        return labels.get(str(v), str(v).replace("_", " ").replace("-", " "))
    return fmt


fmt_financing = _labelled({
    "cash": "Cash", "conventional": "Conventional", "fha": "FHA", "va": "VA", "usda": "USDA",
})
fmt_earnest_due = _labelled({
    "upon_acceptance": "Upon acceptance",
    "within_3_business_days": "Within 3 business days of acceptance",
    "within_5_business_days": "Within 5 business days of acceptance",
    "at_closing": "At closing",
})
fmt_possession = _labelled({
    "at_closing": "At closing", "upon_recording": "Upon recording", "other": "Other (see message)",
})


def normalize(fmt: Callable[[Any], str], value: Any) -> str:
    """Apply a normalizer; malformed input falls back to its text form."""
    try:
        return fmt(value)
    except (TypeError, ValueError, AttributeError, OverflowError):
        return fmt_text(value)


# ---------------------------------------------------------------------------
# Field tables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Field:
    label: str
    path: str
    fmt: Callable[[Any], str]


@dataclass(frozen=True)
class CrossField:
    label: str
    loi_path: str
    psa_path: str
    fmt: Callable[[Any], str]


LOI_FIELDS: tuple[Field, ...] = (
    Field("Purchase price", "economic_terms.purchase_price", fmt_money),
    Field("Earnest money", "economic_terms.earnest_money", fmt_money),
    Field("Seller concessions", "economic_terms.seller_concessions", fmt_concession),
    Field("Closing date", "timeline.closing_date", fmt_date),
    Field("Due diligence period", "timeline.due_diligence_days", fmt_days),
    Field("Financing type", "financing.type", fmt_financing),
    Field("Down payment", "financing.down_payment_percent", fmt_percent),
    Field("Financing contingency", "financing.financing_contingency", fmt_bool),
    Field("Financing period", "financing.financing_days", fmt_days),
    Field("Sold as-is", "condition_of_sale.as_is", fmt_bool),
    Field("Inspection contingency", "condition_of_sale.inspection_contingency", fmt_bool),
    Field("Inspection period", "condition_of_sale.inspection_days", fmt_days),
    Field("Appraisal contingency", "condition_of_sale.appraisal_contingency", fmt_bool),
    Field("Home sale contingency", "condition_of_sale.home_sale_contingency", fmt_bool),
    Field("Response deadline", "timeline.response_deadline", fmt_date),
    Field("Exclusivity", "exclusivity.exclusive", fmt_bool),
    Field("Exclusivity period", "exclusivity.exclusivity_days", fmt_days),
    Field("Assignable", "assignment.assignable", fmt_bool),
    Field("Assignment notes", "assignment.notes", fmt_text),
    Field("Non-binding", "legal.non_binding", fmt_bool),
    Field("Confidential", "legal.confidential", fmt_bool),
    Field("Governing law", "legal.governing_law", fmt_text),
    Field("Buyer", "parties.buyer_name", fmt_text),
    Field("Buyer entity", "parties.buyer_entity", fmt_text),
    Field("Seller", "parties.seller_name", fmt_text),
    Field("Property address", "property.address", fmt_text),
    Field("Parcel ID", "property.parcel_id", fmt_text),
)

PSA_FIELDS: tuple[Field, ...] = (
    Field("Purchase price", "price.amount", fmt_money),
    Field("Earnest money", "earnest_money.amount", fmt_money),
    Field("Earnest money due", "earnest_money.due", fmt_earnest_due),
    Field("Earnest money held by", "earnest_money.held_by", fmt_text),
    Field("Seller concessions", "seller_concessions", fmt_concession),
    Field("Closing date", "closing.closing_date", fmt_date),
    Field("Financing type", "financing.type", fmt_financing),
    Field("Down payment", "financing.down_payment_percent", fmt_percent),
    Field("Loan amount", "financing.loan_amount", fmt_money),
    Field("Inspection contingency", "contingencies.inspection", fmt_contingency),
    Field("Financing contingency", "contingencies.financing", fmt_contingency),
    Field("Appraisal contingency", "contingencies.appraisal", fmt_contingency),
    Field("Home sale contingency", "contingencies.home_sale", fmt_contingency),
    Field("Possession", "closing.possession", fmt_possession),
    Field("Title company", "closing.title_company", fmt_text),
    Field("Inclusions", "inclusions", fmt_text),
    Field("Exclusions", "exclusions", fmt_text),
    Field("Additional terms", "additional_terms", fmt_text),
    Field("Buyer", "parties.buyer_name", fmt_text),
    Field("Buyer entity", "parties.buyer_entity", fmt_text),
    Field("Seller", "parties.seller_name", fmt_text),
    Field("Property address", "property.address", fmt_text),
    Field("Parcel ID", "property.parcel_id", fmt_text),
    Field("Legal description", "property.legal_description", fmt_text),
)

LEGACY_FIELDS: tuple[Field, ...] = (
    Field("Offer amount", "offer_amount", fmt_money),
    Field("Earnest money", "earnest_money", fmt_money),
    Field("Earnest money due", "earnest_money_due", fmt_earnest_due),
    Field("Seller concessions", "seller_concessions", fmt_concession),
    Field("Proposed closing date", "proposed_closing_date", fmt_date),
    Field("Financing type", "financing_type", fmt_financing),
    Field("Down payment", "down_payment", fmt_percent),
    Field("Inspection", "contingencies.inspection", fmt_contingency),
    Field("Financing", "contingencies.financing", fmt_contingency),
    Field("Appraisal", "contingencies.appraisal", fmt_contingency),
    Field("Home sale", "contingencies.home_sale", fmt_contingency),
    Field("Possession", "possession", fmt_possession),
    Field("Inclusions", "inclusions", fmt_text),
)

# LOI → the PSA converted from it
LOI_TO_PSA_FIELDS: tuple[CrossField, ...] = (
    CrossField("Purchase price", "economic_terms.purchase_price", "price.amount", fmt_money),
    CrossField("Earnest money", "economic_terms.earnest_money", "earnest_money.amount", fmt_money),
    CrossField("Seller concessions", "economic_terms.seller_concessions", "seller_concessions", fmt_concession),
    CrossField("Closing date", "timeline.closing_date", "closing.closing_date", fmt_date),
    CrossField("Financing type", "financing.type", "financing.type", fmt_financing),
    CrossField("Down payment", "financing.down_payment_percent", "financing.down_payment_percent", fmt_percent),
    CrossField("Financing contingency", "financing.financing_contingency",
               "contingencies.financing.included", fmt_bool),
    CrossField("Financing period", "financing.financing_days", "contingencies.financing.days", fmt_days),
    CrossField("Inspection contingency", "condition_of_sale.inspection_contingency",
               "contingencies.inspection.included", fmt_bool),
    CrossField("Inspection period", "condition_of_sale.inspection_days", "contingencies.inspection.days", fmt_days),
    CrossField("Appraisal contingency", "condition_of_sale.appraisal_contingency",
               "contingencies.appraisal.included", fmt_bool),
    CrossField("Home sale contingency", "condition_of_sale.home_sale_contingency",
               "contingencies.home_sale.included", fmt_bool),
    CrossField("Buyer", "parties.buyer_name", "parties.buyer_name", fmt_text),
    CrossField("Buyer entity", "parties.buyer_entity", "parties.buyer_entity", fmt_text),
    CrossField("Seller", "parties.seller_name", "parties.seller_name", fmt_text),
    CrossField("Property address", "property.address", "property.address", fmt_text),
    CrossField("Parcel ID", "property.parcel_id", "property.parcel_id", fmt_text),
)

SAME_KIND_FIELDS = {"loi": LOI_FIELDS, "psa": PSA_FIELDS, "legacy": LEGACY_FIELDS}


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------

def _as_dict(doc: Any) -> dict:
    if isinstance(doc, BaseModel):
        return doc.model_dump(mode="python")
    if isinstance(doc, dict):
        return doc
    return {}


# Top-level keys that identify an untagged draft
SHAPE_KEYS = {
    "loi": ("economic_terms", "timeline", "condition_of_sale", "exclusivity"),
    "psa": ("price", "earnest_money", "closing", "contingencies"),
    "legacy": ("offer_amount", "proposed_closing_date", "financing_type"),
}


def _kind(doc: dict) -> str | None:
    return _plain(doc.get("kind")) or None


def _shape(doc: dict) -> str | None:
    for name in ("loi", "legacy", "psa"):
        if any(key in doc for key in SHAPE_KEYS[name]):
            return name
    return None


def get_path(doc: dict, path: str) -> Any:
    """Resolve a dotted path; anything missing along the way is None."""
    value: Any = doc
    for part in path.split("."):
        if isinstance(value, BaseModel):
            value = getattr(value, part, None)
        elif isinstance(value, dict):
            value = value.get(part)
        else:
            return None
        if value is None:
            return None
    return value


def _row(label: str, fmt: Callable[[Any], str], a: Any, b: Any) -> DiffRow | None:
    before, after = normalize(fmt, a), normalize(fmt, b)
    if before == after:
        return None
    return DiffRow(label=label, original=before, current=after)


def diff(original: Any, current: Any) -> list[DiffRow]:
    """Ordered rows for every field whose normalized value differs."""
    a, b = _as_dict(original), _as_dict(current)
    ka, kb = _kind(a), _kind(b)
    if not (ka and kb):
        # an untagged side is read as the other side's kind
        ka = kb = ka or kb or _shape(a) or _shape(b)
    if ka is None:
        return []
    rows: list[DiffRow | None]

    if ka == kb and ka in SAME_KIND_FIELDS:
        rows = [_row(f.label, f.fmt, get_path(a, f.path), get_path(b, f.path))
                for f in SAME_KIND_FIELDS[ka]]
    elif (ka, kb) == ("loi", "psa"):
        rows = [_row(f.label, f.fmt, get_path(a, f.loi_path), get_path(b, f.psa_path))
                for f in LOI_TO_PSA_FIELDS]
    elif (ka, kb) == ("psa", "loi"):
        rows = [_row(f.label, f.fmt, get_path(a, f.psa_path), get_path(b, f.loi_path))
                for f in LOI_TO_PSA_FIELDS]
    else:
        raise ValidationError("cannot diff these document kinds", context={"original": ka, "current": kb})

    return [r for r in rows if r is not None]


def diff_offers(original: Offer, current: Offer) -> list[DiffRow]:
    return diff(original.document, current.document)
