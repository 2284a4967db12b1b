"""
Exception hierarchy for offer negotiation and transaction tracking.

Every error carries a message plus a context dict so callers (and logs) can
tell which offer, transaction or property was involved. Store failures are
translated into these kinds by ``wrap_store_error``; nothing here retries.
"""

from __future__ import annotations

import sqlite3
from typing import Any


class OfferDeskError(Exception):
    """Base exception for all offerdesk errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message


class ValidationError(OfferDeskError):
    """Required input missing or malformed."""


class NotFoundError(OfferDeskError):
    """Offer, transaction, property, vendor or draft does not exist."""


class PermissionDeniedError(OfferDeskError):
    """Actor is not a party to the negotiation."""


class ConflictError(OfferDeskError):
    """Write conflicts with the current state of a record."""


class InvalidTransitionError(ConflictError):
    """Offer is not in a state that allows the requested transition."""


class StaleWriteError(ConflictError):
    """Compare-and-swap failed: the record changed since it was read."""


class TransientIOError(OfferDeskError):
    """Underlying store unreachable or busy. Safe for the caller to retry."""


def wrap_store_error(exc: Exception, context: dict[str, Any] | None = None) -> OfferDeskError:
    """
    Wrap a SQLite/OS exception in the typed hierarchy.

    Args:
        exc: The original exception
        context: Additional context for debugging

    Returns:
        TransientIOError for lock/IO failures, ConflictError for constraint
        violations, OfferDeskError otherwise.
    """
    ctx = dict(context or {})
    ctx["original_error"] = str(exc)
    ctx["error_type"] = type(exc).__name__

    if isinstance(exc, sqlite3.IntegrityError):
        return ConflictError(f"Store constraint violation: {exc}", context=ctx)
    if isinstance(exc, (sqlite3.OperationalError, OSError)):
        return TransientIOError(f"Store unavailable: {exc}", context=ctx)
    return OfferDeskError(f"Store error: {exc}", context=ctx)
