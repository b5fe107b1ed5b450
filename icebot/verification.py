"""Invoice verification: dedup, fetch, status check, persistence and role grant."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import aiosqlite

from .sellapp import InvoiceNotFound, SellAppClient, SellAppUnauthorized, SellAppUnavailable
from .status import is_eligible, normalize_status, resolve_product_id
from .store import InsertResult, VerificationStore

logger = logging.getLogger(__name__)


class RoleGrantError(Exception):
    """The platform refused or failed to add a role."""


class GuildGateway(Protocol):
    """What the workflow needs from the community it grants roles in."""

    async def fetch_member(self, account_id: str) -> Any | None: ...

    def can_manage_roles(self) -> bool: ...

    async def fetch_role(self, role_id: str) -> Any | None: ...

    def top_rank(self) -> int: ...

    def rank_of(self, role: Any) -> int: ...

    async def add_role(self, member: Any, role: Any, reason: str) -> None: ...


class OutcomeKind(enum.Enum):
    GRANTED = "granted"
    INVALID_INPUT = "invalid_input"
    ALREADY_USED = "already_used"
    CONCURRENTLY_USED = "concurrently_used"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    NOT_ELIGIBLE = "not_eligible"
    STORAGE_ERROR = "storage_error"
    NO_ROLE_CONFIGURED = "no_role_configured"
    MEMBER_NOT_FOUND = "member_not_found"
    INSUFFICIENT_PERMISSION = "insufficient_permission"
    ROLE_NOT_FOUND = "role_not_found"
    ROLE_RANK_TOO_LOW = "role_rank_too_low"
    GRANT_FAILED = "grant_failed"


# Outcomes reached after the invoice was written; the invoice stays consumed.
PERSISTED_KINDS = frozenset({
    OutcomeKind.GRANTED,
    OutcomeKind.NO_ROLE_CONFIGURED,
    OutcomeKind.MEMBER_NOT_FOUND,
    OutcomeKind.INSUFFICIENT_PERMISSION,
    OutcomeKind.ROLE_NOT_FOUND,
    OutcomeKind.ROLE_RANK_TOO_LOW,
    OutcomeKind.GRANT_FAILED,
})

RETRYABLE_KINDS = frozenset({
    OutcomeKind.UPSTREAM_UNAVAILABLE,
    OutcomeKind.UNAUTHORIZED,
    OutcomeKind.STORAGE_ERROR,
})

_INCOMPLETE = "✅ Invoice verified but {detail} Contact staff."

_MESSAGES = {
    OutcomeKind.INVALID_INPUT: "❌ Invoice ID is required.",
    OutcomeKind.ALREADY_USED: "❌ Invoice ID {invoice_id} is already used by another discord account.",
    OutcomeKind.CONCURRENTLY_USED: "❌ Invoice ID {invoice_id} was just used by another account.",
    OutcomeKind.UPSTREAM_UNAVAILABLE: "❌ Could not verify invoice. Please try again later.",
    OutcomeKind.UNAUTHORIZED: "❌ Sell.app API unauthorized (invalid API key). Please try again later.",
    OutcomeKind.NOT_FOUND: "❌ Invoice not found.",
    OutcomeKind.NOT_ELIGIBLE: "❌ Invoice status is {status}. Not eligible.",
    OutcomeKind.STORAGE_ERROR: "❌ Internal error while checking invoice. Try again later.",
    OutcomeKind.NO_ROLE_CONFIGURED: _INCOMPLETE.format(
        detail="no role mapping found and VERIFY_ROLE_ID is not configured."),
    OutcomeKind.MEMBER_NOT_FOUND: _INCOMPLETE.format(
        detail="could not find your guild member to assign role."),
    OutcomeKind.INSUFFICIENT_PERMISSION: _INCOMPLETE.format(
        detail="bot lacks Manage Roles to assign role."),
    OutcomeKind.ROLE_NOT_FOUND: _INCOMPLETE.format(
        detail="configured role not found in this server."),
    OutcomeKind.ROLE_RANK_TOO_LOW: _INCOMPLETE.format(
        detail="bot role is not high enough to assign the verification role."),
    OutcomeKind.GRANT_FAILED: _INCOMPLETE.format(detail="failed to assign role."),
    OutcomeKind.GRANTED: "✅ Invoice verified! Status: {status}. Role <@&{role_id}> assigned.",
}


@dataclass(frozen=True)
class Outcome:
    kind: OutcomeKind
    invoice_id: str
    status: Optional[str] = None
    role_id: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.kind is OutcomeKind.GRANTED

    @property
    def persisted(self) -> bool:
        """True when the invoice id is now permanently consumed."""
        return self.kind in PERSISTED_KINDS

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    def message(self) -> str:
        return _MESSAGES[self.kind].format(
            invoice_id=self.invoice_id,
            status=self.status or "UNKNOWN",
            role_id=self.role_id,
        )


class VerificationWorkflow:
    """Turns one invoice id into a role grant or a rejection.

    The UNIQUE constraint behind ``VerificationStore.insert_verification`` is
    the only serialization point; the dedup lookup before the fetch just
    spares the API call for ids that are already consumed.
    """

    def __init__(
        self,
        store: VerificationStore,
        sellapp: SellAppClient,
        default_role_id: Optional[str] = None,
    ):
        self.store = store
        self.sellapp = sellapp
        self.default_role_id = default_role_id

    async def verify(self, invoice_id: str, account_id: str, guild: GuildGateway) -> Outcome:
        invoice_id = (invoice_id or "").strip()
        if not invoice_id:
            return Outcome(OutcomeKind.INVALID_INPUT, invoice_id)

        try:
            existing = await self.store.find_verification(invoice_id)
        except aiosqlite.Error:
            logger.exception("DB error checking invoice reuse for %s", invoice_id)
            return Outcome(OutcomeKind.STORAGE_ERROR, invoice_id)
        if existing is not None:
            return Outcome(OutcomeKind.ALREADY_USED, invoice_id)

        try:
            document = await self.sellapp.get_invoice(invoice_id)
        except SellAppUnauthorized:
            return Outcome(OutcomeKind.UNAUTHORIZED, invoice_id)
        except InvoiceNotFound:
            return Outcome(OutcomeKind.NOT_FOUND, invoice_id)
        except SellAppUnavailable:
            return Outcome(OutcomeKind.UPSTREAM_UNAVAILABLE, invoice_id)
        if document is None:
            return Outcome(OutcomeKind.NOT_FOUND, invoice_id)

        status = normalize_status(document)
        logger.info("Invoice %s status extracted: %s", invoice_id, status)
        if not is_eligible(status):
            return Outcome(OutcomeKind.NOT_ELIGIBLE, invoice_id, status=status)

        product_id = resolve_product_id(document)
        role_id = await self._resolve_role(product_id)

        try:
            result = await self.store.insert_verification(
                invoice_id, account_id, product_id, role_id, status)
        except aiosqlite.Error:
            logger.exception("DB insert error for verification of %s", invoice_id)
            return Outcome(OutcomeKind.STORAGE_ERROR, invoice_id, status=status)
        if result is InsertResult.CONFLICT:
            return Outcome(OutcomeKind.CONCURRENTLY_USED, invoice_id, status=status)

        if role_id is None:
            logger.warning("Invoice %s verified (product %s) but no role is configured",
                           invoice_id, product_id)
            return Outcome(OutcomeKind.NO_ROLE_CONFIGURED, invoice_id, status=status)

        kind = await self._grant(guild, account_id, role_id, f"Verified invoice {invoice_id}")
        if kind is OutcomeKind.GRANTED:
            logger.info("Invoice %s verified for %s, role %s assigned", invoice_id, account_id, role_id)
        return Outcome(kind, invoice_id, status=status, role_id=role_id)

    async def restore_roles(self, account_id: str, guild: GuildGateway) -> list[str]:
        """Re-add roles recorded for ``account_id``. Returns the role ids added."""
        records = await self.store.find_by_account(account_id)
        restored = []
        for role_id in dict.fromkeys(r.role_id for r in records if r.role_id):
            kind = await self._grant(guild, account_id, role_id, "Restoring verified invoice role")
            if kind is OutcomeKind.GRANTED:
                restored.append(role_id)
            else:
                logger.warning("Could not restore role %s for %s: %s", role_id, account_id, kind.value)
        return restored

    async def _resolve_role(self, product_id: Optional[str]) -> Optional[str]:
        if product_id:
            try:
                mapped = await self.store.get_role_mapping(product_id)
            except aiosqlite.Error:
                logger.exception("DB error fetching role mapping for product %s", product_id)
                mapped = None
            if mapped:
                return str(mapped)
        return str(self.default_role_id) if self.default_role_id else None

    async def _grant(self, guild: GuildGateway, account_id: str, role_id: str, reason: str) -> OutcomeKind:
        member = await guild.fetch_member(account_id)
        if member is None:
            return OutcomeKind.MEMBER_NOT_FOUND
        if not guild.can_manage_roles():
            return OutcomeKind.INSUFFICIENT_PERMISSION
        role = await guild.fetch_role(role_id)
        if role is None:
            return OutcomeKind.ROLE_NOT_FOUND
        if guild.top_rank() <= guild.rank_of(role):
            return OutcomeKind.ROLE_RANK_TOO_LOW
        try:
            await guild.add_role(member, role, reason)
        except RoleGrantError:
            logger.exception("Failed to assign role %s to %s", role_id, account_id)
            return OutcomeKind.GRANT_FAILED
        return OutcomeKind.GRANTED
