"""
Tests for the quote workflow service.
"""

import asyncio
from decimal import Decimal

import pytest

from conftest import COMPANY, NOW, OTHER_COMPANY, FakeClock
from repair_estimator.config.settings import Settings, StoreSettings
from repair_estimator.exceptions import (
    ConcurrentModificationError,
    IDGenerationExhausted,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StoreTimeoutError,
    TransientStoreError,
    ValidationError,
)
from repair_estimator.models.appraisal import AppraisalType
from repair_estimator.models.catalog import MetalType, ServiceCategory
from repair_estimator.models.pricing import PricingPolicy
from repair_estimator.models.quote import Quote, QuotePriority, QuoteStatus, RushType
from repair_estimator.models.records import RecordType, encode_quote
from repair_estimator.models.user import SessionContext, StaticSessionProvider, UserRole
from repair_estimator.services.pricing.appraisal import AppraisalRequest
from repair_estimator.services.workflow.workflow_service import WorkflowService
from repair_estimator.store.memory import InMemoryRecordStore


class FixedIDs:
    """Hands out a fixed sequence of quote ids."""

    def __init__(self, *ids):
        self.ids = list(ids)

    async def generate_unique_quote_id(self, company_id: str) -> str:
        if not self.ids:
            raise IDGenerationExhausted(company_id, 0)
        return self.ids.pop(0)


class FlakyStore(InMemoryRecordStore):
    """Fails the first few saves with a transient error."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures
        self.save_calls = 0

    async def save(self, record_type, record, **kwargs):
        self.save_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransientStoreError("connection reset")
        return await super().save(record_type, record, **kwargs)


class SlowStore(InMemoryRecordStore):
    async def fetch(self, record_type, record_id):
        await asyncio.sleep(1)
        return await super().fetch(record_type, record_id)


async def approved_quote(workflow: WorkflowService, **kwargs) -> Quote:
    quote = await workflow.create_quote("guest-42", **kwargs)
    await workflow.update_status(quote.id, QuoteStatus.PRESENTED)
    return await workflow.update_status(quote.id, QuoteStatus.APPROVED)


class TestCreateQuote:
    """Tests for quote creation."""

    async def test_creates_draft(self, workflow):
        quote = await workflow.create_quote("guest-42", primary_service_category=ServiceCategory.JEWELRY_REPAIR)

        assert quote.id == "Q-2025-000001"
        assert quote.company_id == COMPANY
        assert quote.store_id == "store-1"
        assert quote.status is QuoteStatus.DRAFT
        assert quote.priority is QuotePriority.HIGH
        assert quote.total == Decimal("0")
        assert not quote.exempt_item
        assert await workflow.get_quote(quote.id) == quote

    async def test_ids_increase(self, workflow):
        first = await workflow.create_quote("guest-1")
        second = await workflow.create_quote("guest-2")
        assert (first.id, second.id) == ("Q-2025-000001", "Q-2025-000002")

    async def test_purchase_protected_sku_is_exempt(self, workflow):
        quote = await workflow.create_quote("guest-42", sales_sku="PUR-88812")
        assert quote.exempt_item

    async def test_same_day_after_cutoff_needs_coordinator(self, workflow, manager_workflow, clock):
        clock.advance(hours=6)
        quote = await workflow.create_quote("guest-42", rush_type=RushType.SAME_DAY)

        assert quote.coordinator_approval_required
        assert quote.priority is QuotePriority.URGENT

        with pytest.raises(PermissionDeniedError):
            await workflow.grant_coordinator_approval(quote.id)
        granted = await manager_workflow.grant_coordinator_approval(quote.id)
        assert granted.coordinator_approval_granted

    async def test_retries_when_id_is_taken(self, store, associate, settings, clock):
        await store.save(RecordType.QUOTE, {"id": "Q-2025-000001", "company_id": COMPANY})
        workflow = WorkflowService(
            store,
            StaticSessionProvider(associate),
            settings,
            id_generator=FixedIDs("Q-2025-000001", "Q-2025-000002"),
            clock=clock,
        )

        quote = await workflow.create_quote("guest-42")
        assert quote.id == "Q-2025-000002"

    async def test_gives_up_after_creation_attempts(self, store, associate, settings, clock):
        taken = [f"Q-2025-00000{n}" for n in (1, 2, 3)]
        for quote_id in taken:
            await store.save(RecordType.QUOTE, {"id": quote_id, "company_id": COMPANY})
        workflow = WorkflowService(
            store,
            StaticSessionProvider(associate),
            settings,
            id_generator=FixedIDs(*taken),
            clock=clock,
        )

        with pytest.raises(IDGenerationExhausted):
            await workflow.create_quote("guest-42")


class TestStatusUpdates:
    """Tests for status transitions through the service."""

    async def test_update_writes_status_log(self, workflow):
        quote = await workflow.create_quote("guest-42")
        presented = await workflow.update_status(quote.id, QuoteStatus.PRESENTED, notes="Shown at counter")

        assert presented.status is QuoteStatus.PRESENTED
        assert presented.updated_at > quote.updated_at

        history = await workflow.get_status_history(quote.id)
        assert len(history) == 1
        assert history[0].previous_status is QuoteStatus.DRAFT
        assert history[0].new_status is QuoteStatus.PRESENTED
        assert history[0].changed_by == "ned"
        assert history[0].notes == "Shown at counter"

    async def test_approval_sets_due_date(self, workflow):
        approved = await approved_quote(workflow, primary_service_category=ServiceCategory.JEWELRY_REPAIR)

        assert approved.estimate_approved
        assert approved.approved_by == "ned"
        assert approved.promised_due_date.date().isoformat() == "2025-03-17"

    async def test_invalid_transition_leaves_quote_unchanged(self, workflow):
        quote = await workflow.create_quote("guest-42")

        with pytest.raises(InvalidTransitionError):
            await workflow.update_status(quote.id, QuoteStatus.COMPLETED)

        assert (await workflow.get_quote(quote.id)).status is QuoteStatus.DRAFT
        assert await workflow.get_status_history(quote.id) == []

    async def test_unknown_quote(self, workflow):
        with pytest.raises(NotFoundError):
            await workflow.update_status("Q-2025-000999", QuoteStatus.PRESENTED)

    async def test_stale_write_is_rejected(self, workflow, monkeypatch):
        quote = await workflow.create_quote("guest-42")
        stale = await workflow.get_quote(quote.id)
        await workflow.update_status(quote.id, QuoteStatus.PRESENTED)

        async def stale_read(quote_id):
            return stale

        monkeypatch.setattr(workflow, "get_quote", stale_read)
        with pytest.raises(ConcurrentModificationError):
            await workflow.update_status(quote.id, QuoteStatus.CANCELLED, notes="Guest left")

        monkeypatch.undo()
        assert (await workflow.get_quote(quote.id)).status is QuoteStatus.PRESENTED


class TestLineItems:
    """Tests for line pricing and quote totals."""

    async def test_add_line_updates_totals(self, workflow):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-ring-solder", metal_type=MetalType.GOLD_14K)

        assert line.final_retail == Decimal("221.25")
        assert line.metal_weight_grams == Decimal("0.7")
        assert not line.is_rush

        quote = await workflow.get_quote(quote.id)
        assert quote.subtotal == Decimal("221.25")
        assert quote.tax == Decimal("17.70")
        assert quote.total == Decimal("238.95")
        assert quote.primary_service_category is ServiceCategory.JEWELRY_REPAIR

    async def test_rush_quote_applies_multiplier_once(self, workflow):
        quote = await workflow.create_quote("guest-42", rush_type=RushType.WITHIN_48_HOURS)
        await workflow.add_line_item(quote.id, "svc-ring-solder", metal_type=MetalType.GOLD_14K)

        quote = await workflow.get_quote(quote.id)
        assert quote.rush_multiplier_applied == Decimal("1.5")
        assert quote.subtotal == Decimal("221.25")
        assert quote.total == Decimal("349.58")

    async def test_exempt_rush_quote_pays_no_rush(self, workflow):
        quote = await workflow.create_quote("guest-42", rush_type=RushType.SAME_DAY, sales_sku="14K-BAND")
        line = await workflow.add_line_item(quote.id, "svc-ring-solder", metal_type=MetalType.GOLD_14K)

        assert line.rush_multiplier == Decimal("1.0")
        quote = await workflow.get_quote(quote.id)
        assert quote.rush_multiplier_applied == Decimal("1.0")
        assert quote.total == Decimal("238.95")

    async def test_quantity_and_removal(self, workflow):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-size-down", quantity=2)
        assert (await workflow.get_quote(quote.id)).subtotal == Decimal("90.00")

        quote = await workflow.remove_line_item(quote.id, line.id)
        assert quote.subtotal == Decimal("0.00")
        assert await workflow.list_line_items(quote.id) == []

    async def test_lines_locked_after_approval(self, workflow):
        quote = await approved_quote(workflow)
        with pytest.raises(ValidationError):
            await workflow.add_line_item(quote.id, "svc-ring-solder")

    async def test_unknown_service(self, workflow):
        quote = await workflow.create_quote("guest-42")
        with pytest.raises(NotFoundError):
            await workflow.add_line_item(quote.id, "svc-missing")

    async def test_explicit_generic_policy(self, workflow):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-ring-solder", policy=PricingPolicy.GENERIC_PRICING)
        assert line.final_retail == Decimal("0.00")

    async def test_stale_quote_leaves_no_orphan_line(self, workflow, monkeypatch):
        quote = await workflow.create_quote("guest-42")
        stale = await workflow.get_quote(quote.id)
        await workflow.update_status(quote.id, QuoteStatus.PRESENTED)

        async def stale_read(quote_id):
            return stale

        monkeypatch.setattr(workflow, "get_quote", stale_read)
        with pytest.raises(ConcurrentModificationError):
            await workflow.add_line_item(quote.id, "svc-ring-solder", metal_type=MetalType.GOLD_14K)

        monkeypatch.undo()
        assert await workflow.list_line_items(quote.id) == []
        assert (await workflow.get_quote(quote.id)).subtotal == Decimal("0.00")


class TestOverrides:
    """Tests for manual price overrides."""

    async def test_small_discount_by_associate(self, workflow):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-ring-solder", metal_type=MetalType.GOLD_14K)

        updated = await workflow.override_line_item(quote.id, line.id, Decimal("205.00"), "Round number")

        assert updated.effective_retail == Decimal("205.00")
        assert updated.final_retail == Decimal("221.25")
        assert (await workflow.get_quote(quote.id)).subtotal == Decimal("205.00")

    async def test_large_discount_needs_manager(self, workflow, manager_workflow):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-ring-solder", metal_type=MetalType.GOLD_14K)

        with pytest.raises(PermissionDeniedError):
            await workflow.override_line_item(quote.id, line.id, Decimal("150.00"), "Regular customer")

        updated = await manager_workflow.override_line_item(
            quote.id, line.id, Decimal("150.00"), "Regular customer"
        )
        assert updated.effective_retail == Decimal("150.00")

    async def test_generic_line_priced_by_hand(self, workflow):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-generic")
        assert line.final_retail == Decimal("0.00")

        await workflow.override_line_item(quote.id, line.id, Decimal("80.00"), "Bench estimate")
        quote = await workflow.get_quote(quote.id)
        assert quote.subtotal == Decimal("80.00")
        assert quote.total == Decimal("86.40")

    async def test_override_requires_reason(self, workflow):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-ring-solder")
        with pytest.raises(ValidationError):
            await workflow.override_line_item(quote.id, line.id, Decimal("110.00"), "")

    async def test_stale_quote_keeps_original_price(self, workflow, monkeypatch):
        quote = await workflow.create_quote("guest-42")
        line = await workflow.add_line_item(quote.id, "svc-ring-solder", metal_type=MetalType.GOLD_14K)
        stale = await workflow.get_quote(quote.id)
        await workflow.update_status(quote.id, QuoteStatus.PRESENTED)

        async def stale_read(quote_id):
            return stale

        monkeypatch.setattr(workflow, "get_quote", stale_read)
        with pytest.raises(ConcurrentModificationError):
            await workflow.override_line_item(quote.id, line.id, Decimal("205.00"), "Round number")

        monkeypatch.undo()
        [stored] = await workflow.list_line_items(quote.id)
        assert stored.manual_override_retail is None
        assert stored.effective_retail == Decimal("221.25")
        assert (await workflow.get_quote(quote.id)).subtotal == Decimal("221.25")


class TestDeletion:
    """Tests for quote deletion."""

    async def test_refuses_with_children_unless_cascade(self, workflow):
        quote = await workflow.create_quote("guest-42")
        await workflow.add_line_item(quote.id, "svc-ring-solder")
        await workflow.add_photo(quote.id, "https://assets.example/ring.jpg", "Before")

        with pytest.raises(ValidationError):
            await workflow.delete_quote(quote.id)

        await workflow.delete_quote(quote.id, cascade=True)
        with pytest.raises(NotFoundError):
            await workflow.get_quote(quote.id)
        assert await workflow.list_line_items(quote.id) == []
        assert await workflow.list_photos(quote.id) == []

    async def test_only_draft_or_cancelled(self, workflow):
        quote = await approved_quote(workflow)
        with pytest.raises(ValidationError):
            await workflow.delete_quote(quote.id)

        await workflow.update_status(quote.id, QuoteStatus.CANCELLED, notes="Guest changed mind")
        await workflow.delete_quote(quote.id)
        with pytest.raises(NotFoundError):
            await workflow.get_quote(quote.id)


class TestQueues:
    """Tests for overdue and work queue views."""

    async def test_overdue_after_promised_date(self, workflow, clock):
        quote = await approved_quote(workflow, primary_service_category=ServiceCategory.JEWELRY_REPAIR)
        await workflow.update_status(quote.id, QuoteStatus.IN_SHOP)

        assert await workflow.get_overdue_quotes() == []

        clock.advance(days=6)
        overdue = await workflow.get_overdue_quotes()
        assert [q.id for q in overdue] == [quote.id]

    async def test_approved_not_yet_started_is_not_overdue(self, workflow, clock):
        await approved_quote(workflow, primary_service_category=ServiceCategory.JEWELRY_REPAIR)
        clock.advance(days=10)
        assert await workflow.get_overdue_quotes() == []

    async def test_queue_ordering(self, workflow):
        standard = await approved_quote(workflow, primary_service_category=ServiceCategory.JEWELRY_REPAIR)
        appraisal = await approved_quote(workflow, primary_service_category=ServiceCategory.APPRAISAL)
        same_day = await approved_quote(workflow, rush_type=RushType.SAME_DAY)
        await workflow.create_quote("guest-99")

        queue = await workflow.get_queued_quotes()
        assert [q.id for q in queue] == [same_day.id, standard.id, appraisal.id]

    async def test_recalculate_priorities(self, workflow, store):
        stale = Quote(
            id="Q-2025-000500",
            company_id=COMPANY,
            store_id="store-1",
            guest_id="guest-7",
            status=QuoteStatus.IN_SHOP,
            created_at=NOW,
            updated_at=NOW,
            valid_until=NOW,
            priority=QuotePriority.LOW,
            primary_service_category=ServiceCategory.WATCH_REPAIR,
        )
        await store.save(RecordType.QUOTE, encode_quote(stale))

        assert await workflow.recalculate_priorities() == 1
        assert (await workflow.get_quote(stale.id)).priority is QuotePriority.HIGH
        assert await workflow.recalculate_priorities() == 0

    async def test_operations_report_duration(self, workflow, monkeypatch):
        completed = {}

        def record(operation, company_id=None, duration_ms=None, **kwargs):
            completed[operation] = duration_ms

        monkeypatch.setattr(workflow.logger, "log_operation_complete", record)
        quote = await workflow.create_quote("guest-42")
        await workflow.update_status(quote.id, QuoteStatus.PRESENTED)
        await workflow.recalculate_priorities()

        assert set(completed) == {"create_quote", "update_status", "recalculate_priorities"}
        assert all(duration is not None and duration >= 0 for duration in completed.values())

    async def test_rework_stays_urgent_through_recalculation(self, workflow):
        quote = await approved_quote(workflow, primary_service_category=ServiceCategory.JEWELRY_REPAIR)
        await workflow.update_status(quote.id, QuoteStatus.IN_SHOP)
        await workflow.update_status(quote.id, QuoteStatus.QUALITY_REVIEW)
        await workflow.update_status(quote.id, QuoteStatus.QUALITY_FAILED, notes="Prong loose")
        reworked = await workflow.update_status(quote.id, QuoteStatus.IN_SHOP)
        assert reworked.priority is QuotePriority.URGENT

        assert await workflow.recalculate_priorities() == 0
        assert (await workflow.get_quote(quote.id)).priority is QuotePriority.URGENT

        await workflow.update_status(quote.id, QuoteStatus.QUALITY_REVIEW)
        await workflow.update_status(quote.id, QuoteStatus.READY_FOR_PICKUP)
        assert await workflow.recalculate_priorities() == 1
        assert (await workflow.get_quote(quote.id)).priority is QuotePriority.HIGH


class TestTenantIsolation:
    """Tests that one company never sees another's quotes."""

    async def test_other_company_cannot_read(self, workflow, store, settings, clock):
        quote = await workflow.create_quote("guest-42")
        outsider = WorkflowService(
            store,
            StaticSessionProvider(
                SessionContext(company_id=OTHER_COMPANY, store_id=None, user_id="hank", role=UserRole.ADMIN)
            ),
            settings,
            clock=clock,
        )

        with pytest.raises(NotFoundError):
            await outsider.get_quote(quote.id)
        with pytest.raises(NotFoundError):
            await outsider.update_status(quote.id, QuoteStatus.PRESENTED)
        assert await outsider.get_queued_quotes() == []

    async def test_cross_company_queue_read_denied(self, workflow):
        with pytest.raises(PermissionDeniedError):
            await workflow.get_overdue_quotes(company_id=OTHER_COMPANY)


class TestAppraisals:
    """Tests for appraisals attached to quotes."""

    async def test_add_appraisal(self, workflow):
        quote = await workflow.create_quote("guest-42", primary_service_category=ServiceCategory.APPRAISAL)
        appraisal = await workflow.add_appraisal(
            quote.id,
            AppraisalRequest(AppraisalType.INSURANCE, item_count=3, largest_carat_weight=Decimal("1.5")),
        )

        assert appraisal.final_fee == Decimal("390.00")
        assert await workflow.list_appraisals(quote.id) == [appraisal]

    async def test_appraisal_override(self, workflow):
        quote = await workflow.create_quote("guest-42")
        appraisal = await workflow.add_appraisal(
            quote.id,
            AppraisalRequest(AppraisalType.INSURANCE, item_count=1),
            fee_override=Decimal("120"),
            override_reason="Returning customer",
        )
        assert appraisal.calculated_fee == Decimal("150.00")
        assert appraisal.final_fee == Decimal("120.00")


class TestStoreResilience:
    """Tests for retries and timeouts around the record store."""

    async def test_transient_failures_are_retried(self, associate, settings, clock):
        flaky = FlakyStore(failures=2)
        workflow = WorkflowService(flaky, StaticSessionProvider(associate), settings, clock=clock)

        quote = await workflow.create_quote("guest-42")

        assert quote.id == "Q-2025-000001"
        assert flaky.save_calls == 3

    async def test_persistent_failure_surfaces(self, associate, settings, clock):
        workflow = WorkflowService(FlakyStore(failures=10), StaticSessionProvider(associate), settings, clock=clock)
        with pytest.raises(TransientStoreError):
            await workflow.create_quote("guest-42")

    async def test_slow_store_times_out(self, associate):
        fast_fail = Settings(store=StoreSettings(timeout_seconds=0.05, retry_attempts=1))
        workflow = WorkflowService(SlowStore(), StaticSessionProvider(associate), fast_fail, clock=FakeClock())

        with pytest.raises(StoreTimeoutError):
            await workflow.get_quote("Q-2025-000001")
