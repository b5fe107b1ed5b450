import asyncio

import aiosqlite
import pytest

from icebot.sellapp import InvoiceNotFound, SellAppUnauthorized, SellAppUnavailable
from icebot.verification import Outcome, OutcomeKind, VerificationWorkflow

from .conftest import FakeSellApp

PAID = {"id": 2711846, "status": "paid", "items": [{"product_id": "prod-1"}]}


def workflow(store, document=PAID, error=None, default_role_id="777"):
    return VerificationWorkflow(store, FakeSellApp(document, error), default_role_id=default_role_id)


# ---------------------------------------------------------------------------
# Happy path and role resolution
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_mapped_product_role_is_granted(store, guild):
    await store.set_role_mapping("prod-1", "555")
    flow = workflow(store)

    outcome = await flow.verify("2711846", "1001", guild)

    assert outcome.kind is OutcomeKind.GRANTED
    assert outcome.status == "PAID"
    assert outcome.role_id == "555"
    assert guild.granted == [("1001", "555", "Verified invoice 2711846")]
    assert outcome.message() == "✅ Invoice verified! Status: PAID. Role <@&555> assigned."

    record = await store.find_verification("2711846")
    assert (record.account_id, record.product_id, record.role_id, record.status) == ("1001", "prod-1", "555", "PAID")


@pytest.mark.asyncio
async def test_unmapped_product_falls_back_to_default_role(store, guild):
    outcome = await workflow(store).verify("2711846", "1001", guild)
    assert outcome.kind is OutcomeKind.GRANTED
    assert outcome.role_id == "777"


@pytest.mark.asyncio
async def test_no_product_uses_default_role(store, guild):
    outcome = await workflow(store, {"status": {"status": "Completed"}}).verify("X1", "1001", guild)
    assert outcome.kind is OutcomeKind.GRANTED
    assert outcome.role_id == "777"
    assert (await store.find_verification("X1")).product_id is None


@pytest.mark.asyncio
async def test_invoice_id_is_trimmed(store, guild):
    flow = workflow(store)
    outcome = await flow.verify("  2711846 ", "1001", guild)
    assert outcome.granted
    assert flow.sellapp.calls == ["2711846"]


# ---------------------------------------------------------------------------
# Early exits before persistence
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("invoice_id", ["", "   ", None])
async def test_empty_invoice_id_is_invalid(store, guild, invoice_id):
    flow = workflow(store)
    outcome = await flow.verify(invoice_id, "1001", guild)
    assert outcome.kind is OutcomeKind.INVALID_INPUT
    assert flow.sellapp.calls == []


@pytest.mark.asyncio
async def test_used_invoice_is_rejected_without_api_call(store, guild):
    await store.insert_verification("2711846", "2002", None, "555", "PAID")
    flow = workflow(store)

    outcome = await flow.verify("2711846", "1001", guild)

    assert outcome.kind is OutcomeKind.ALREADY_USED
    assert flow.sellapp.calls == []
    assert "already used" in outcome.message()


@pytest.mark.asyncio
@pytest.mark.parametrize("error, kind", [
    (SellAppUnauthorized("/invoices/1"), OutcomeKind.UNAUTHORIZED),
    (InvoiceNotFound("/invoices/1"), OutcomeKind.NOT_FOUND),
    (SellAppUnavailable("timeout"), OutcomeKind.UPSTREAM_UNAVAILABLE),
])
async def test_upstream_failures(store, guild, error, kind):
    outcome = await workflow(store, error=error).verify("1", "1001", guild)
    assert outcome.kind is kind
    assert not outcome.persisted
    assert await store.find_verification("1") is None


@pytest.mark.asyncio
async def test_empty_document_is_not_found(store, guild):
    outcome = await workflow(store, document=None).verify("1", "1001", guild)
    assert outcome.kind is OutcomeKind.NOT_FOUND
    assert not outcome.retryable


@pytest.mark.asyncio
async def test_retry_later_is_suggested_for_upstream_failures(store, guild):
    outcome = await workflow(store, error=SellAppUnavailable("boom")).verify("1", "1001", guild)
    assert outcome.retryable
    assert "try again later" in outcome.message()


@pytest.mark.asyncio
@pytest.mark.parametrize("document, shown", [
    ({"status": "pending"}, "PENDING"),
    ({"status": "refunded", "items": [{"product_id": "prod-1"}]}, "REFUNDED"),
    ({"id": 5}, "UNKNOWN"),
])
async def test_ineligible_status(store, guild, document, shown):
    outcome = await workflow(store, document).verify("1", "1001", guild)
    assert outcome.kind is OutcomeKind.NOT_ELIGIBLE
    assert outcome.message() == f"❌ Invoice status is {shown}. Not eligible."
    assert await store.find_verification("1") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["paid", "PAID", "Paid", "fulfilled", "Success", "COMPLETED"])
async def test_accepted_statuses_any_case(store, guild, status):
    outcome = await workflow(store, {"status": status}).verify("1", "1001", guild)
    assert outcome.granted
    assert outcome.status == status.upper()


@pytest.mark.asyncio
async def test_storage_error_on_lookup_consumes_nothing(tmp_path, guild):
    from icebot.store import VerificationStore

    closed = VerificationStore(str(tmp_path / "never-opened.sqlite"))
    outcome = await workflow(closed).verify("1", "1001", guild)
    assert outcome.kind is OutcomeKind.STORAGE_ERROR
    assert outcome.retryable


class FailingInsertStore:
    """Wraps a real store but fails inserts with a non-constraint error."""

    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    async def insert_verification(self, *args, **kwargs):
        raise aiosqlite.OperationalError("disk I/O error")


@pytest.mark.asyncio
async def test_storage_error_on_insert_leaves_invoice_eligible(store, guild):
    outcome = await workflow(FailingInsertStore(store)).verify("2711846", "1001", guild)
    assert outcome.kind is OutcomeKind.STORAGE_ERROR
    assert not outcome.persisted
    assert guild.granted == []

    retry = await workflow(store).verify("2711846", "1001", guild)
    assert retry.granted


# ---------------------------------------------------------------------------
# After persistence: the invoice stays consumed
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_no_role_configured_still_persists(store, guild):
    flow = workflow(store, default_role_id=None)

    outcome = await flow.verify("2711846", "1001", guild)

    assert outcome.kind is OutcomeKind.NO_ROLE_CONFIGURED
    assert outcome.persisted
    assert outcome.message().startswith("✅ Invoice verified but")
    record = await store.find_verification("2711846")
    assert record is not None and record.role_id is None

    retry = await flow.verify("2711846", "1001", guild)
    assert retry.kind is OutcomeKind.ALREADY_USED
    assert flow.sellapp.calls == ["2711846"]


@pytest.mark.asyncio
async def test_member_not_found(store, guild):
    outcome = await workflow(store).verify("1", "4242", guild)
    assert outcome.kind is OutcomeKind.MEMBER_NOT_FOUND
    assert await store.find_verification("1") is not None


@pytest.mark.asyncio
async def test_missing_manage_roles(store, guild):
    guild.manage_roles = False
    outcome = await workflow(store).verify("1", "1001", guild)
    assert outcome.kind is OutcomeKind.INSUFFICIENT_PERMISSION
    assert outcome.persisted
    assert guild.granted == []


@pytest.mark.asyncio
async def test_role_missing_from_guild(store, guild):
    outcome = await workflow(store, default_role_id="31337").verify("1", "1001", guild)
    assert outcome.kind is OutcomeKind.ROLE_NOT_FOUND


@pytest.mark.asyncio
@pytest.mark.parametrize("bot_rank", [0, 1, 2])
async def test_bot_rank_must_be_strictly_higher(store, guild, bot_rank):
    guild.bot_rank = bot_rank  # default role 777 sits at position 2
    outcome = await workflow(store).verify("1", "1001", guild)
    assert outcome.kind is OutcomeKind.ROLE_RANK_TOO_LOW
    assert guild.granted == []


@pytest.mark.asyncio
async def test_platform_refusal_is_grant_failed(store, guild):
    guild.fail_add = True
    outcome = await workflow(store).verify("1", "1001", guild)
    assert outcome.kind is OutcomeKind.GRANT_FAILED
    assert outcome.persisted
    assert await store.find_verification("1") is not None


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class BarrierSellApp(FakeSellApp):
    """Holds every fetch until ``parties`` callers have arrived."""

    def __init__(self, document, parties):
        super().__init__(document)
        self.parties = parties
        self.arrived = asyncio.Event()

    async def get_invoice(self, invoice_id):
        self.calls.append(invoice_id)
        if len(self.calls) >= self.parties:
            self.arrived.set()
        await self.arrived.wait()
        return self.document


@pytest.mark.asyncio
async def test_concurrent_verifications_commit_once(store, guild):
    guild.members.add("2002")
    sellapp = BarrierSellApp(PAID, parties=2)
    flow = VerificationWorkflow(store, sellapp, default_role_id="777")

    first, second = await asyncio.gather(
        flow.verify("2711846", "1001", guild),
        flow.verify("2711846", "2002", guild),
    )

    kinds = sorted([first.kind, second.kind], key=lambda k: k.value)
    assert kinds == [OutcomeKind.CONCURRENTLY_USED, OutcomeKind.GRANTED]
    assert len(sellapp.calls) == 2
    assert len(guild.granted) == 1
    winner = guild.granted[0][0]
    assert (await store.find_verification("2711846")).account_id == winner
    assert len(await store.find_by_account("1001")) + len(await store.find_by_account("2002")) == 1


@pytest.mark.asyncio
async def test_sequential_duplicate_is_already_used(store, guild):
    flow = workflow(store)
    assert (await flow.verify("2711846", "1001", guild)).granted
    assert (await flow.verify("2711846", "1001", guild)).kind is OutcomeKind.ALREADY_USED


# ---------------------------------------------------------------------------
# Role restore on rejoin
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_restore_roles_re_adds_recorded_roles_once(store, guild):
    await store.insert_verification("A", "1001", None, "555", "PAID")
    await store.insert_verification("B", "1001", None, "555", "PAID")
    await store.insert_verification("C", "1001", None, "777", "PAID")
    await store.insert_verification("D", "1001", None, None, "PAID")
    await store.insert_verification("E", "2002", None, "777", "PAID")

    restored = await workflow(store).restore_roles("1001", guild)

    assert restored == ["555", "777"]
    assert [g[1] for g in guild.granted] == ["555", "777"]


@pytest.mark.asyncio
async def test_restore_roles_respects_rank(store, guild):
    await store.insert_verification("A", "1001", None, "555", "PAID")
    guild.bot_rank = 3
    assert await workflow(store).restore_roles("1001", guild) == []


def test_outcome_messages_cover_every_kind():
    for kind in OutcomeKind:
        assert Outcome(kind, "INV", status="PAID", role_id="555").message()
