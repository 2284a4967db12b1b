"""Offer document schemas and their canonical defaults.

An offer carries exactly one document, tagged by ``kind``:

- ``loi``     Letter of Intent, a nested non-binding outline of terms
- ``psa``     structured Purchase and Sale Agreement
- ``legacy``  the flat offer shape submitted by the quick-offer form

Code that needs to treat the variants differently branches on ``kind``.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from offerdesk.errors import ValidationError


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class FinancingType(str, Enum):
    CASH = "cash"
    CONVENTIONAL = "conventional"
    FHA = "fha"
    VA = "va"
    USDA = "usda"


class ConcessionType(str, Enum):
    NONE = "none"
    AMOUNT = "amount"
    PERCENT = "percent"


class EarnestMoneyDue(str, Enum):
    UPON_ACCEPTANCE = "upon_acceptance"
    WITHIN_3_BUSINESS_DAYS = "within_3_business_days"
    WITHIN_5_BUSINESS_DAYS = "within_5_business_days"
    AT_CLOSING = "at_closing"


class Possession(str, Enum):
    AT_CLOSING = "at_closing"
    UPON_RECORDING = "upon_recording"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Shared building blocks
# ---------------------------------------------------------------------------

class Contingency(BaseModel):
    included: bool = False
    days: int | None = None


class Contingencies(BaseModel):
    # A contingency left out of a submitted mapping is not included
    inspection: Contingency = Field(default_factory=Contingency)
    financing: Contingency = Field(default_factory=Contingency)
    appraisal: Contingency = Field(default_factory=Contingency)
    home_sale: Contingency = Field(default_factory=Contingency)


def default_contingencies() -> Contingencies:
    """Inspection (10 days), financing (30 days) and appraisal; no home-sale contingency."""
    return Contingencies(
        inspection=Contingency(included=True, days=10),
        financing=Contingency(included=True, days=30),
        appraisal=Contingency(included=True),
        home_sale=Contingency(included=False),
    )


class SellerConcessions(BaseModel):
    type: ConcessionType = ConcessionType.NONE
    value: float | None = None


# ---------------------------------------------------------------------------
# Legacy flat offer
# ---------------------------------------------------------------------------

class LegacyOfferTerms(BaseModel):
    kind: Literal["legacy"] = "legacy"
    offer_amount: float | None = None
    earnest_money: float | None = None
    earnest_money_due: EarnestMoneyDue | None = None
    proposed_closing_date: date | None = None
    financing_type: FinancingType = FinancingType.CONVENTIONAL
    down_payment: float | None = None  # percent
    seller_concessions: SellerConcessions | None = None
    contingencies: Contingencies = Field(default_factory=default_contingencies)
    inclusions: str | None = None
    possession: Possession | None = None


# ---------------------------------------------------------------------------
# Letter of Intent
# ---------------------------------------------------------------------------

class LoiParties(BaseModel):
    buyer_name: str = ""
    buyer_entity: str = ""
    seller_name: str = ""


class LoiProperty(BaseModel):
    address: str = ""
    parcel_id: str = ""


class LoiEconomicTerms(BaseModel):
    purchase_price: float | None = None
    earnest_money: float | None = None
    seller_concessions: SellerConcessions = Field(default_factory=SellerConcessions)


class LoiTimeline(BaseModel):
    due_diligence_days: int | None = 30
    closing_date: date | None = None
    response_deadline: date | None = None


class LoiFinancing(BaseModel):
    type: FinancingType = FinancingType.CONVENTIONAL
    down_payment_percent: float | None = None
    financing_contingency: bool = True
    financing_days: int | None = 30


class LoiConditionOfSale(BaseModel):
    as_is: bool = False
    inspection_contingency: bool = True
    inspection_days: int | None = 10
    appraisal_contingency: bool = True
    home_sale_contingency: bool = False


class LoiAssignment(BaseModel):
    assignable: bool = False
    notes: str = ""


class LoiExclusivity(BaseModel):
    exclusive: bool = False
    exclusivity_days: int | None = None


class LoiLegal(BaseModel):
    non_binding: bool = True
    confidential: bool = False
    governing_law: str = ""


class LoiDocument(BaseModel):
    kind: Literal["loi"] = "loi"
    parties: LoiParties = Field(default_factory=LoiParties)
    property: LoiProperty = Field(default_factory=LoiProperty)
    economic_terms: LoiEconomicTerms = Field(default_factory=LoiEconomicTerms)
    timeline: LoiTimeline = Field(default_factory=LoiTimeline)
    financing: LoiFinancing = Field(default_factory=LoiFinancing)
    condition_of_sale: LoiConditionOfSale = Field(default_factory=LoiConditionOfSale)
    assignment: LoiAssignment = Field(default_factory=LoiAssignment)
    exclusivity: LoiExclusivity = Field(default_factory=LoiExclusivity)
    legal: LoiLegal = Field(default_factory=LoiLegal)


# ---------------------------------------------------------------------------
# Structured Purchase and Sale Agreement
# ---------------------------------------------------------------------------

class PsaParties(BaseModel):
    buyer_name: str = ""
    buyer_entity: str = ""
    seller_name: str = ""


class PsaProperty(BaseModel):
    address: str = ""
    parcel_id: str = ""
    legal_description: str = ""


class PsaPrice(BaseModel):
    amount: float | None = None


class PsaEarnestMoney(BaseModel):
    amount: float | None = None
    due: EarnestMoneyDue = EarnestMoneyDue.WITHIN_3_BUSINESS_DAYS
    held_by: str = ""


class PsaFinancing(BaseModel):
    type: FinancingType = FinancingType.CONVENTIONAL
    down_payment_percent: float | None = None
    loan_amount: float | None = None


class PsaClosing(BaseModel):
    closing_date: date | None = None
    possession: Possession = Possession.AT_CLOSING
    title_company: str = ""


class PsaAgreement(BaseModel):
    kind: Literal["psa"] = "psa"
    parties: PsaParties = Field(default_factory=PsaParties)
    property: PsaProperty = Field(default_factory=PsaProperty)
    price: PsaPrice = Field(default_factory=PsaPrice)
    earnest_money: PsaEarnestMoney = Field(default_factory=PsaEarnestMoney)
    financing: PsaFinancing = Field(default_factory=PsaFinancing)
    contingencies: Contingencies = Field(default_factory=default_contingencies)
    closing: PsaClosing = Field(default_factory=PsaClosing)
    seller_concessions: SellerConcessions = Field(default_factory=SellerConcessions)
    inclusions: str = ""
    exclusions: str = ""
    additional_terms: str = ""
    source_loi_offer_id: str | None = None


OfferDocument = Annotated[
    Union[LoiDocument, PsaAgreement, LegacyOfferTerms],
    Field(discriminator="kind"),
]

_document_adapter: TypeAdapter[Any] = TypeAdapter(OfferDocument)

DOCUMENT_KINDS = ("loi", "psa", "legacy")


# ---------------------------------------------------------------------------
# Defaults & parsing
# ---------------------------------------------------------------------------

def default_loi() -> LoiDocument:
    return LoiDocument()


def default_psa() -> PsaAgreement:
    return PsaAgreement()


def default_legacy_terms() -> LegacyOfferTerms:
    return LegacyOfferTerms()


def parse_document(data: Any) -> LoiDocument | PsaAgreement | LegacyOfferTerms:
    """Validate a raw mapping (or pass through a model) by its ``kind`` tag."""
    if isinstance(data, (LoiDocument, PsaAgreement, LegacyOfferTerms)):
        return data
    if not isinstance(data, dict) or data.get("kind") not in DOCUMENT_KINDS:
        raise ValidationError(
            "document must be a mapping with kind in loi/psa/legacy",
            context={"kind": data.get("kind") if isinstance(data, dict) else None},
        )
    try:
        return _document_adapter.validate_python(data)
    except PydanticValidationError as e:
        raise ValidationError(f"invalid {data['kind']} document", context={"errors": e.errors()}) from e


# ---------------------------------------------------------------------------
# LOI -> PSA conversion
# ---------------------------------------------------------------------------

def convert_loi_to_psa(loi: LoiDocument, source_offer_id: str | None = None) -> PsaAgreement:
    """Seed a binding agreement from the terms agreed in an LOI."""
    econ = loi.economic_terms
    cond = loi.condition_of_sale
    fin = loi.financing
    return PsaAgreement(
        parties=PsaParties(
            buyer_name=loi.parties.buyer_name,
            buyer_entity=loi.parties.buyer_entity,
            seller_name=loi.parties.seller_name,
        ),
        property=PsaProperty(address=loi.property.address, parcel_id=loi.property.parcel_id),
        price=PsaPrice(amount=econ.purchase_price),
        earnest_money=PsaEarnestMoney(amount=econ.earnest_money),
        financing=PsaFinancing(type=fin.type, down_payment_percent=fin.down_payment_percent),
        contingencies=Contingencies(
            inspection=Contingency(included=cond.inspection_contingency,
                                   days=cond.inspection_days),
            financing=Contingency(included=fin.financing_contingency,
                                  days=fin.financing_days),
            appraisal=Contingency(included=cond.appraisal_contingency),
            home_sale=Contingency(included=cond.home_sale_contingency),
        ),
        closing=PsaClosing(closing_date=loi.timeline.closing_date),
        seller_concessions=econ.seller_concessions.model_copy(),
        source_loi_offer_id=source_offer_id,
    )


# ---------------------------------------------------------------------------
# Flat deal terms (shared by the step generator and transaction snapshot)
# ---------------------------------------------------------------------------

class DealTerms(BaseModel):
    offer_amount: float | None = None
    earnest_money: float | None = None
    proposed_closing_date: date | None = None
    financing_type: FinancingType | None = None
    contingencies: Contingencies = Field(default_factory=Contingencies)


def deal_terms(document: LoiDocument | PsaAgreement | LegacyOfferTerms) -> DealTerms:
    """Flatten a binding document into the terms a transaction is built from."""
    if document.kind == "legacy":
        return DealTerms(
            offer_amount=document.offer_amount,
            earnest_money=document.earnest_money,
            proposed_closing_date=document.proposed_closing_date,
            financing_type=document.financing_type,
            contingencies=document.contingencies.model_copy(deep=True),
        )
    if document.kind == "psa":
        return DealTerms(
            offer_amount=document.price.amount,
            earnest_money=document.earnest_money.amount,
            proposed_closing_date=document.closing.closing_date,
            financing_type=document.financing.type,
            contingencies=document.contingencies.model_copy(deep=True),
        )
    raise ValidationError("LOI documents carry no binding deal terms", context={"kind": document.kind})
