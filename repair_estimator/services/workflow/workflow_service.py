"""
Quote workflow service.

Handles quote creation, line pricing, status transitions and work queues.
All side effects of the quoting process live here: persistence, status
logs and audit events. Decisions are delegated to the pure pricing engine
and state machine.
"""

import time
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable
from uuid import uuid4

from repair_estimator.config.settings import Settings, get_settings
from repair_estimator.exceptions import (
    DuplicateRecordError,
    IDGenerationExhausted,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from repair_estimator.models.appraisal import AppraisalService
from repair_estimator.models.catalog import MetalType, ServiceCategory
from repair_estimator.models.pricing import PricingPolicy, PricingRule
from repair_estimator.models.quote import (
    Quote,
    QuoteLineItem,
    QuotePhoto,
    QuoteStatus,
    RushType,
    StatusChangeLog,
)
from repair_estimator.models.records import (
    RecordType,
    decode_appraisal,
    decode_line_item,
    decode_photo,
    decode_quote,
    decode_status_log,
    encode_appraisal,
    encode_line_item,
    encode_photo,
    encode_quote,
    encode_status_log,
)
from repair_estimator.models.user import SessionContext, SessionProvider
from repair_estimator.services.pricing.appraisal import (
    AppraisalRequest,
    build_appraisal,
    calculate_appraisal_fee,
)
from repair_estimator.services.pricing.engine import (
    NO_RUSH,
    PriceRequest,
    PricingEngine,
    build_line_item,
    detect_exempt_item,
    is_after_same_day_cutoff,
    resolve_pricing_rule,
)
from repair_estimator.services.workflow.quote_ids import QuoteIDGenerator
from repair_estimator.services.workflow.state_machine import (
    DELETABLE_STATUSES,
    EDITABLE_STATUSES,
    OVERDUE_EXEMPT_STATUSES,
    QUEUED_STATUSES,
    TERMINAL_STATUSES,
    apply_transition,
    derive_priority,
    is_overdue,
    next_updated_at,
)
from repair_estimator.store.base import RecordStore
from repair_estimator.store.gateway import ResilientStore
from repair_estimator.store.query import in_, lt
from repair_estimator.utils.logging import ServiceLogger, audit_logger
from repair_estimator.utils.money import ZERO, to_money


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowService:
    """
    Service for the quote lifecycle.

    Provides:
    - Quote creation with sequential ids
    - Line pricing, manual overrides and totals
    - Status transitions with optimistic concurrency and status logs
    - Overdue and work-queue views
    - Photos and appraisals attached to a quote
    """

    def __init__(
        self,
        store: RecordStore,
        session_provider: SessionProvider,
        settings: Settings | None = None,
        id_generator: QuoteIDGenerator | None = None,
        pricing_engine: PricingEngine | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.settings = settings or get_settings()
        if not isinstance(store, ResilientStore):
            store = ResilientStore.from_settings(store, self.settings.store)
        self.store = store
        self.session_provider = session_provider
        self.clock = clock
        self.id_generator = id_generator or QuoteIDGenerator(
            store,
            max_attempts=self.settings.quote.id_generation_max_attempts,
            clock=clock,
        )
        self.pricing_engine = pricing_engine or PricingEngine(store, self.settings)
        self.logger = ServiceLogger("workflow")

    @property
    def session(self) -> SessionContext:
        return self.session_provider.current()

    def _company(self, company_id: str | None) -> str:
        session = self.session
        if company_id is None or company_id == session.company_id:
            return session.company_id
        audit_logger.log_permission_denied(session.user_id, session.company_id, RecordType.QUOTE, "cross_company_read")
        raise PermissionDeniedError("read another company's quotes", session.role)

    # Reads

    async def get_quote(self, quote_id: str) -> Quote:
        record = await self.store.fetch(RecordType.QUOTE, quote_id)
        if record is None or record.get("company_id") != self.session.company_id:
            raise NotFoundError(RecordType.QUOTE, quote_id)
        return decode_quote(record)

    async def list_line_items(self, quote_id: str) -> list[QuoteLineItem]:
        records = await self.store.query(
            RecordType.LINE_ITEM, {"quote_id": quote_id}, sort=[("created_at", False)]
        )
        return [decode_line_item(r) for r in records]

    async def list_photos(self, quote_id: str) -> list[QuotePhoto]:
        records = await self.store.query(RecordType.PHOTO, {"quote_id": quote_id}, sort=[("created_at", False)])
        return [decode_photo(r) for r in records]

    async def list_appraisals(self, quote_id: str) -> list[AppraisalService]:
        records = await self.store.query(
            RecordType.APPRAISAL, {"quote_id": quote_id}, sort=[("created_at", False)]
        )
        return [decode_appraisal(r) for r in records]

    async def get_status_history(self, quote_id: str) -> list[StatusChangeLog]:
        await self.get_quote(quote_id)
        records = await self.store.query(
            RecordType.STATUS_LOG, {"quote_id": quote_id}, sort=[("changed_at", False)]
        )
        return [decode_status_log(r) for r in records]

    # Creation

    async def create_quote(
        self,
        guest_id: str,
        *,
        store_id: str | None = None,
        primary_service_category: ServiceCategory | None = None,
        rush_type: RushType = RushType.STANDARD,
        requested_due_date: datetime | None = None,
        sales_sku: str | None = None,
        pre_approved_limit: Decimal | None = None,
        customer_notes: str | None = None,
        internal_notes: str | None = None,
    ) -> Quote:
        """
        Create a draft quote for the session's company.

        Retries with a fresh id when a concurrent writer took the one we
        generated.

        Raises:
            IDGenerationExhausted: no free id after the configured attempts
        """
        session = self.session
        start = time.perf_counter()
        self.logger.log_operation_start("create_quote", company_id=session.company_id, guest_id=guest_id)

        now = self.clock()
        pricing = self.settings.pricing
        coordinator_required = rush_type is RushType.SAME_DAY and is_after_same_day_cutoff(
            now, pricing.same_day_cutoff_hour, pricing.business_timezone
        )

        attempts = self.settings.quote.creation_max_attempts
        for attempt in range(1, attempts + 1):
            quote_id = await self.id_generator.generate_unique_quote_id(session.company_id)
            quote = Quote(
                id=quote_id,
                company_id=session.company_id,
                store_id=store_id or session.store_id,
                guest_id=guest_id,
                status=QuoteStatus.DRAFT,
                created_at=now,
                updated_at=now,
                valid_until=now + timedelta(days=self.settings.quote.validity_days),
                currency_code=self.settings.quote.currency_code,
                primary_service_category=primary_service_category,
                rush_type=rush_type,
                requested_due_date=requested_due_date,
                exempt_item=detect_exempt_item(sales_sku, pricing.exempt_sku_prefixes),
                sales_sku=sales_sku,
                coordinator_approval_required=coordinator_required,
                pre_approved_limit=pre_approved_limit,
                customer_notes=customer_notes,
                internal_notes=internal_notes,
            )
            quote = replace(quote, priority=derive_priority(quote))
            try:
                await self.store.save(RecordType.QUOTE, encode_quote(quote), if_absent=True)
            except DuplicateRecordError:
                self.logger.log_warning(
                    "quote_id_taken",
                    company_id=session.company_id,
                    quote_id=quote_id,
                    attempt=attempt,
                )
                continue

            audit_logger.log_action(
                "create",
                user_id=session.user_id,
                company_id=session.company_id,
                resource_type=RecordType.QUOTE,
                resource_id=quote.id,
                new_values={"status": quote.status.value, "guest_id": guest_id},
            )
            self.logger.log_operation_complete(
                "create_quote",
                company_id=session.company_id,
                duration_ms=(time.perf_counter() - start) * 1000,
                quote_id=quote.id,
            )
            return quote

        error = IDGenerationExhausted(session.company_id, attempts)
        self.logger.log_operation_failed("create_quote", error, company_id=session.company_id)
        raise error

    # Status

    async def update_status(
        self,
        quote_id: str,
        new_status: QuoteStatus,
        notes: str | None = None,
    ) -> Quote:
        """
        Move a quote to a new status.

        Raises:
            NotFoundError: unknown quote
            InvalidTransitionError: change not allowed from current status
            ValidationError: required note missing
            ConcurrentModificationError: quote changed since it was read
        """
        session = self.session
        start = time.perf_counter()
        self.logger.log_operation_start(
            "update_status",
            company_id=session.company_id,
            quote_id=quote_id,
            new_status=new_status.value,
        )

        quote = await self.get_quote(quote_id)
        try:
            updated = apply_transition(
                quote,
                new_status,
                actor_id=session.user_id,
                now=self.clock(),
                notes=notes,
            )
        except (InvalidTransitionError, ValidationError) as e:
            self.logger.log_operation_failed("update_status", e, company_id=session.company_id, quote_id=quote_id)
            raise

        await self.store.save(
            RecordType.QUOTE,
            encode_quote(updated),
            expected_updated_at=quote.updated_at,
        )

        log_entry = StatusChangeLog(
            id=str(uuid4()),
            quote_id=quote.id,
            company_id=quote.company_id,
            previous_status=quote.status,
            new_status=updated.status,
            changed_by=session.user_id,
            changed_at=updated.updated_at,
            notes=notes,
        )
        await self.store.save(RecordType.STATUS_LOG, encode_status_log(log_entry), if_absent=True)

        audit_logger.log_status_change(
            quote.id,
            quote.status.value,
            updated.status.value,
            user_id=session.user_id,
            company_id=session.company_id,
            notes=notes,
        )
        self.logger.log_operation_complete(
            "update_status",
            company_id=session.company_id,
            quote_id=quote_id,
            previous_status=quote.status.value,
            new_status=updated.status.value,
            priority=updated.priority.value,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        return updated

    async def grant_coordinator_approval(self, quote_id: str) -> Quote:
        session = self.session
        if not session.role.can_approve_overrides:
            audit_logger.log_permission_denied(
                session.user_id, session.company_id, RecordType.QUOTE, "grant_coordinator_approval"
            )
            raise PermissionDeniedError("grant coordinator approval", session.role)

        quote = await self.get_quote(quote_id)
        updated = replace(
            quote,
            coordinator_approval_granted=True,
            updated_at=next_updated_at(quote.updated_at, self.clock()),
        )
        await self.store.save(RecordType.QUOTE, encode_quote(updated), expected_updated_at=quote.updated_at)
        audit_logger.log_action(
            "coordinator_approval",
            user_id=session.user_id,
            company_id=session.company_id,
            resource_type=RecordType.QUOTE,
            resource_id=quote.id,
        )
        return updated

    # Line items

    def _require_editable(self, quote: Quote) -> None:
        if quote.status not in EDITABLE_STATUSES:
            raise ValidationError(
                f"Quote {quote.id} cannot be edited while {quote.status.display_name}",
                {"quote_id": quote.id, "status": quote.status.value},
            )

    async def _get_line_item(self, quote_id: str, line_id: str) -> QuoteLineItem:
        record = await self.store.fetch(RecordType.LINE_ITEM, line_id)
        if record is None or record.get("quote_id") != quote_id:
            raise NotFoundError(RecordType.LINE_ITEM, line_id)
        return decode_line_item(record)

    async def add_line_item(
        self,
        quote_id: str,
        service_id: str,
        *,
        quantity: int = 1,
        labor_minutes: int | None = None,
        metal_type: MetalType | None = None,
        metal_weight_grams: Decimal | None = None,
        policy: PricingPolicy | None = None,
    ) -> QuoteLineItem:
        """
        Price a catalog service and add it to a quote.

        Lines are priced without rush; the quote's rush multiplier is
        applied once to the whole subtotal.
        """
        quote = await self.get_quote(quote_id)
        self._require_editable(quote)

        service = await self.pricing_engine.rates.get_service(service_id)
        if service.company_id != quote.company_id:
            raise NotFoundError(RecordType.SERVICE, service_id)

        if policy is None:
            policy = PricingPolicy.EXEMPT if quote.exempt_item else PricingPolicy.STANDARD
        if metal_weight_grams is None and metal_type is not None:
            metal_weight_grams = service.default_metal_usage_grams

        now = self.clock()
        request = PriceRequest(
            company_id=quote.company_id,
            labor_minutes=service.default_labor_minutes if labor_minutes is None else labor_minutes,
            metal_type=metal_type,
            metal_weight_grams=metal_weight_grams,
            is_rush=False,
            policy=policy,
        )
        result = await self.pricing_engine.calculate_price(service, request, now=now)
        line = build_line_item(quote.id, service, request, result, quantity=quantity, created_at=now)
        await self.store.save(RecordType.LINE_ITEM, encode_line_item(line), if_absent=True)

        if quote.primary_service_category is None:
            quote = replace(quote, primary_service_category=service.category)
            quote = replace(quote, priority=derive_priority(quote))
        try:
            await self._save_with_totals(quote)
        except Exception:
            await self.store.delete(RecordType.LINE_ITEM, line.id)
            raise
        return line

    async def override_line_item(
        self,
        quote_id: str,
        line_id: str,
        value: Decimal,
        reason: str,
    ) -> QuoteLineItem:
        """
        Replace a line's calculated price with a staff-entered one.

        Raises:
            ValidationError: missing reason, or the rule forbids overrides
            PermissionDeniedError: discount past the rule's approval
                threshold by a role that cannot approve it
        """
        session = self.session
        quote = await self.get_quote(quote_id)
        self._require_editable(quote)
        line = await self._get_line_item(quote_id, line_id)

        rule = await self._rule_for_service(quote.company_id, line.service_id)
        if not rule.allow_manual_override:
            raise ValidationError(
                f"Pricing rule {rule.name} does not allow manual overrides",
                {"rule_id": rule.id, "line_item_id": line_id},
            )
        value = to_money(value)
        if rule.requires_manager_approval(line.final_retail, value) and not session.role.can_approve_overrides:
            audit_logger.log_permission_denied(
                session.user_id, session.company_id, RecordType.LINE_ITEM, "override_price"
            )
            raise PermissionDeniedError("discount past the manager approval threshold", session.role)

        updated = line.with_override(value, reason)
        await self.store.save(RecordType.LINE_ITEM, encode_line_item(updated))
        try:
            await self._save_with_totals(quote)
        except Exception:
            await self.store.save(RecordType.LINE_ITEM, encode_line_item(line))
            raise

        audit_logger.log_action(
            "override",
            user_id=session.user_id,
            company_id=session.company_id,
            resource_type=RecordType.LINE_ITEM,
            resource_id=line_id,
            old_values={"retail": str(line.effective_retail)},
            new_values={"retail": str(updated.effective_retail)},
            metadata={"quote_id": quote_id, "reason": updated.override_reason},
        )
        return updated

    async def remove_line_item(self, quote_id: str, line_id: str) -> Quote:
        quote = await self.get_quote(quote_id)
        self._require_editable(quote)
        line = await self._get_line_item(quote_id, line_id)
        await self.store.delete(RecordType.LINE_ITEM, line_id)
        try:
            return await self._save_with_totals(quote)
        except Exception:
            await self.store.save(RecordType.LINE_ITEM, encode_line_item(line))
            raise

    async def _rule_for_service(self, company_id: str, service_id: str) -> PricingRule:
        service = await self.pricing_engine.rates.get_service(service_id)
        rules = await self.pricing_engine.rates.active_rules(company_id)
        return resolve_pricing_rule(service, rules, company_id)

    async def _quote_rush_multiplier(self, quote: Quote) -> Decimal:
        if not quote.is_rush or quote.exempt_item:
            return NO_RUSH
        rules = await self.pricing_engine.rates.active_rules(quote.company_id)
        category_rules = [r for r in rules if r.service_category == quote.primary_service_category]
        default_rules = [r for r in rules if r.service_category is None]
        candidates = category_rules or default_rules
        if not candidates:
            return NO_RUSH
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        rule = max(candidates, key=lambda r: (r.created_at or epoch, r.id))
        return rule.formula.rush_multiplier

    async def _save_with_totals(self, quote: Quote) -> Quote:
        """Recompute subtotal, tax and total from the quote's lines and save."""
        lines = await self.list_line_items(quote.id)
        subtotal = sum((line.extended_retail for line in lines), ZERO)
        multiplier = await self._quote_rush_multiplier(quote)
        updated = quote.with_totals(subtotal, multiplier, self.settings.quote.tax_rate)
        original_updated_at = quote.updated_at
        updated = replace(updated, updated_at=next_updated_at(original_updated_at, self.clock()))
        await self.store.save(RecordType.QUOTE, encode_quote(updated), expected_updated_at=original_updated_at)
        return updated

    async def recalculate_totals(self, quote_id: str) -> Quote:
        return await self._save_with_totals(await self.get_quote(quote_id))

    # Photos and appraisals

    async def add_photo(self, quote_id: str, asset_url: str, caption: str | None = None) -> QuotePhoto:
        quote = await self.get_quote(quote_id)
        if not asset_url.strip():
            raise ValidationError("Photo asset url is required", {"quote_id": quote_id})
        photo = QuotePhoto(
            id=str(uuid4()),
            quote_id=quote.id,
            asset_url=asset_url,
            caption=caption,
            created_at=self.clock(),
        )
        await self.store.save(RecordType.PHOTO, encode_photo(photo), if_absent=True)
        return photo

    async def remove_photo(self, quote_id: str, photo_id: str) -> None:
        await self.get_quote(quote_id)
        record = await self.store.fetch(RecordType.PHOTO, photo_id)
        if record is None or record.get("quote_id") != quote_id:
            raise NotFoundError(RecordType.PHOTO, photo_id)
        await self.store.delete(RecordType.PHOTO, photo_id)

    async def add_appraisal(
        self,
        quote_id: str,
        request: AppraisalRequest,
        fee_override: Decimal | None = None,
        override_reason: str | None = None,
    ) -> AppraisalService:
        start = time.perf_counter()
        quote = await self.get_quote(quote_id)
        self._require_editable(quote)
        now = self.clock()
        result = calculate_appraisal_fee(request, now, self.settings.appraisal)
        appraisal = build_appraisal(quote.id, quote.company_id, request, result, created_at=now)
        if fee_override is not None:
            appraisal = appraisal.with_override(fee_override, override_reason or "")
        await self.store.save(RecordType.APPRAISAL, encode_appraisal(appraisal), if_absent=True)
        self.logger.log_operation_complete(
            "add_appraisal",
            company_id=quote.company_id,
            quote_id=quote.id,
            tier=result.tier.value,
            final_fee=str(appraisal.final_fee),
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        return appraisal

    # Deletion

    async def delete_quote(self, quote_id: str, cascade: bool = False) -> None:
        """
        Delete a draft or cancelled quote.

        Quotes with line items or photos are refused unless cascade is set,
        in which case the children are removed first.
        """
        session = self.session
        quote = await self.get_quote(quote_id)
        if quote.status not in DELETABLE_STATUSES:
            raise ValidationError(
                f"Only draft or cancelled quotes can be deleted; {quote.id} is {quote.status.display_name}",
                {"quote_id": quote.id, "status": quote.status.value},
            )

        children = {
            RecordType.LINE_ITEM: await self.store.query(RecordType.LINE_ITEM, {"quote_id": quote.id}),
            RecordType.PHOTO: await self.store.query(RecordType.PHOTO, {"quote_id": quote.id}),
            RecordType.APPRAISAL: await self.store.query(RecordType.APPRAISAL, {"quote_id": quote.id}),
        }
        child_count = sum(len(records) for records in children.values())
        if child_count and not cascade:
            raise ValidationError(
                f"Quote {quote.id} still has {child_count} line items, photos or appraisals",
                {"quote_id": quote.id, "children": child_count},
            )

        for record_type, records in children.items():
            for record in records:
                await self.store.delete(record_type, record["id"])
        for record in await self.store.query(RecordType.STATUS_LOG, {"quote_id": quote.id}):
            await self.store.delete(RecordType.STATUS_LOG, record["id"])
        await self.store.delete(RecordType.QUOTE, quote.id)

        audit_logger.log_action(
            "delete",
            user_id=session.user_id,
            company_id=session.company_id,
            resource_type=RecordType.QUOTE,
            resource_id=quote.id,
            metadata={"cascade": cascade, "children": child_count},
        )

    # Queues

    async def get_overdue_quotes(self, company_id: str | None = None) -> list[Quote]:
        """Quotes past their promised date that are still being worked."""
        company_id = self._company(company_id)
        now = self.clock()
        statuses = [s for s in QuoteStatus if s not in OVERDUE_EXEMPT_STATUSES]
        records = await self.store.query(
            RecordType.QUOTE,
            {
                "company_id": company_id,
                "status": in_(statuses),
                "promised_due_date": lt(now),
            },
            sort=[("promised_due_date", False)],
        )
        return [q for q in (decode_quote(r) for r in records) if is_overdue(q, now)]

    async def get_queued_quotes(self, company_id: str | None = None, store_id: str | None = None) -> list[Quote]:
        """Active work sorted by priority, then promised due date."""
        company_id = self._company(company_id)
        criteria = {"company_id": company_id, "status": in_(QUEUED_STATUSES)}
        if store_id:
            criteria["store_id"] = store_id
        quotes = [decode_quote(r) for r in await self.store.query(RecordType.QUOTE, criteria)]
        latest = datetime.max.replace(tzinfo=timezone.utc)
        return sorted(quotes, key=lambda q: (q.priority.sort_order, q.promised_due_date or latest, q.id))

    async def recalculate_priorities(self, company_id: str | None = None) -> int:
        """Re-derive priority for open quotes. Returns how many changed."""
        start = time.perf_counter()
        company_id = self._company(company_id)
        statuses = [s for s in QuoteStatus if s not in TERMINAL_STATUSES and s is not QuoteStatus.QUALITY_FAILED]
        records = await self.store.query(RecordType.QUOTE, {"company_id": company_id, "status": in_(statuses)})
        changed = 0
        for quote in (decode_quote(r) for r in records):
            priority = derive_priority(quote)
            if priority is quote.priority:
                continue
            updated = replace(
                quote,
                priority=priority,
                updated_at=next_updated_at(quote.updated_at, self.clock()),
            )
            await self.store.save(RecordType.QUOTE, encode_quote(updated), expected_updated_at=quote.updated_at)
            changed += 1
        self.logger.log_operation_complete(
            "recalculate_priorities",
            company_id=company_id,
            changed=changed,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
        return changed
