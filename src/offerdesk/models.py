"""Core data models for offers, transactions, steps, properties and vendors."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from offerdesk.documents import (
    Contingencies,
    FinancingType,
    LegacyOfferTerms,
    LoiDocument,
    OfferDocument,
    PsaAgreement,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OfferType(str, Enum):
    PSA = "psa"
    LOI = "loi"


class OfferStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"
    COUNTERED = "countered"


class PropertyStatus(str, Enum):
    ACTIVE = "active"
    UNDER_CONTRACT = "under_contract"


class TransactionStatus(str, Enum):
    ACTIVE = "active"


class DueStatus(str, Enum):
    OK = "ok"
    DUE_SOON = "due_soon"  # within 7 days
    OVERDUE = "overdue"


class VendorRole(str, Enum):
    TITLE_COMPANY = "title_company"
    INSPECTION_COMPANY = "inspection_company"
    MORTGAGE_SERVICES = "mortgage_services"
    OTHER = "other"


# ---------------------------------------------------------------------------
# Offer
# ---------------------------------------------------------------------------

class Offer(BaseModel):
    id: str = ""
    property_id: str
    buyer_id: str
    created_by: str | None = None

    buyer_name: str | None = None
    buyer_email: str | None = None
    buyer_phone: str | None = None
    message: str = ""

    offer_type: OfferType = OfferType.PSA
    status: OfferStatus = OfferStatus.PENDING

    # Negotiation chain
    counter_to_offer_id: str | None = None
    countered_by_offer_id: str | None = None

    document: OfferDocument = Field(default_factory=LegacyOfferTerms)

    # Uploaded proof-of-funds etc. (opaque URLs)
    verification_documents: list[str] = Field(default_factory=list)

    # Advisory expiration
    offer_expiration_date: date | None = None
    offer_expiration_time: str | None = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    @model_validator(mode="after")
    def _type_matches_document(self) -> Offer:
        expected = OfferType.LOI if self.document.kind == "loi" else OfferType.PSA
        if "offer_type" not in self.model_fields_set:
            self.offer_type = expected
        elif self.offer_type != expected:
            raise ValueError(
                f"offer_type {self.offer_type.value!r} does not match {self.document.kind!r} document"
            )
        return self

    @property
    def is_pending(self) -> bool:
        return self.status == OfferStatus.PENDING

    @property
    def loi(self) -> LoiDocument | None:
        return self.document if isinstance(self.document, LoiDocument) else None

    @property
    def agreement(self) -> PsaAgreement | None:
        return self.document if isinstance(self.document, PsaAgreement) else None


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

class Step(BaseModel):
    id: str
    title: str
    due_at: datetime | None = None
    completed: bool = False
    completed_at: datetime | None = None
    required: bool = True


class AssignedVendor(BaseModel):
    role: VendorRole
    vendor_id: str


class Transaction(BaseModel):
    id: str = ""
    offer_id: str
    property_id: str
    offer_type: OfferType = OfferType.PSA
    buyer_id: str
    seller_id: str | None = None
    parties: list[str] = Field(default_factory=list)

    # Deal terms at acceptance
    offer_amount: float | None = None
    earnest_money: float | None = None
    proposed_closing_date: date | None = None
    financing_type: FinancingType | None = None
    contingencies: Contingencies = Field(default_factory=Contingencies)

    accepted_at: datetime
    status: TransactionStatus = TransactionStatus.ACTIVE
    steps: list[Step] = Field(default_factory=list)
    assigned_vendors: list[AssignedVendor] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0

    def step(self, step_id: str) -> Step | None:
        return next((s for s in self.steps if s.id == step_id), None)

    def vendor_for(self, role: VendorRole) -> str | None:
        return next((a.vendor_id for a in self.assigned_vendors if a.role == role), None)


# ---------------------------------------------------------------------------
# External collaborators (local stand-ins)
# ---------------------------------------------------------------------------

class Property(BaseModel):
    id: str
    seller_id: str | None = None
    status: PropertyStatus = PropertyStatus.ACTIVE
    price: float | None = None
    address: str = ""
    version: int = 0


class Vendor(BaseModel):
    id: str = ""
    owner_id: str = ""
    name: str = ""
    company: str | None = None
    phone: str | None = None
    email: str | None = None
    type: VendorRole = VendorRole.OTHER

    @property
    def contact(self) -> str:
        return " / ".join(v for v in (self.phone, self.email) if v)


# ---------------------------------------------------------------------------
# PSA draft
# ---------------------------------------------------------------------------

class PsaDraft(BaseModel):
    id: str = ""
    property_id: str
    buyer_id: str
    agreement: PsaAgreement = Field(default_factory=PsaAgreement)
    source_loi_offer_id: str | None = None
    source_loi: LoiDocument | None = None
    updated_at: datetime = Field(default_factory=utcnow)
