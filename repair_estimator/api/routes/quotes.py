"""
Quote workflow API routes.
"""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Query, status
from pydantic import BaseModel, Field

from repair_estimator.api.dependencies import WorkflowDep, as_utc
from repair_estimator.models.appraisal import AppraisalType
from repair_estimator.models.catalog import MetalType, ServiceCategory
from repair_estimator.models.pricing import PricingPolicy
from repair_estimator.models.quote import QuoteStatus, RushType
from repair_estimator.schemas import (
    AppraisalResponse,
    LineItemResponse,
    PhotoResponse,
    QuoteDetailResponse,
    QuoteResponse,
    StatusChangeResponse,
)
from repair_estimator.services.pricing.appraisal import AppraisalRequest

router = APIRouter()


# Schemas
class QuoteCreate(BaseModel):
    guest_id: str
    store_id: str | None = None
    primary_service_category: ServiceCategory | None = None
    rush_type: RushType = RushType.STANDARD
    requested_due_date: datetime | None = None
    sales_sku: str | None = None
    pre_approved_limit: Decimal | None = Field(default=None, ge=0)
    customer_notes: str | None = None
    internal_notes: str | None = None


class StatusUpdate(BaseModel):
    status: QuoteStatus
    notes: str | None = None


class LineItemCreate(BaseModel):
    service_id: str
    quantity: int = Field(default=1, ge=1)
    labor_minutes: int | None = Field(default=None, ge=0)
    metal_type: MetalType | None = None
    metal_weight_grams: Decimal | None = Field(default=None, ge=0)
    policy: PricingPolicy | None = None


class PriceOverride(BaseModel):
    value: Decimal = Field(ge=0)
    reason: str = Field(min_length=1)


class PhotoCreate(BaseModel):
    asset_url: str
    caption: str | None = None


class AppraisalCreate(BaseModel):
    appraisal_type: AppraisalType
    item_count: int = Field(ge=1)
    largest_carat_weight: Decimal = Field(default=Decimal("0"), ge=0)
    is_update: bool = False
    original_appraisal_date: datetime | None = None
    expedited: bool = False
    sarin_report: bool = False
    gem_id: bool = False
    photo_documentation: bool = False
    fee_override: Decimal | None = Field(default=None, ge=0)
    override_reason: str | None = None


# Queue endpoints
@router.get("/queue", response_model=list[QuoteResponse])
async def get_queue(workflow: WorkflowDep, store_id: str | None = Query(None)):
    """Active work sorted by priority, then promised due date."""
    quotes = await workflow.get_queued_quotes(store_id=store_id)
    return [QuoteResponse.model_validate(q) for q in quotes]


@router.get("/overdue", response_model=list[QuoteResponse])
async def get_overdue(workflow: WorkflowDep):
    quotes = await workflow.get_overdue_quotes()
    return [QuoteResponse.model_validate(q) for q in quotes]


@router.post("/priorities/recalculate")
async def recalculate_priorities(workflow: WorkflowDep):
    return {"updated": await workflow.recalculate_priorities()}


# Quote endpoints
@router.post("", response_model=QuoteResponse, status_code=status.HTTP_201_CREATED)
async def create_quote(body: QuoteCreate, workflow: WorkflowDep):
    """Create a draft quote."""
    quote = await workflow.create_quote(
        body.guest_id,
        store_id=body.store_id,
        primary_service_category=body.primary_service_category,
        rush_type=body.rush_type,
        requested_due_date=as_utc(body.requested_due_date),
        sales_sku=body.sales_sku,
        pre_approved_limit=body.pre_approved_limit,
        customer_notes=body.customer_notes,
        internal_notes=body.internal_notes,
    )
    return QuoteResponse.model_validate(quote)


@router.get("/{quote_id}", response_model=QuoteDetailResponse)
async def get_quote(quote_id: str, workflow: WorkflowDep):
    """Quote with its line items, photos and appraisals."""
    quote = await workflow.get_quote(quote_id)
    return QuoteDetailResponse(
        quote=QuoteResponse.model_validate(quote),
        line_items=[LineItemResponse.model_validate(i) for i in await workflow.list_line_items(quote_id)],
        photos=[PhotoResponse.model_validate(p) for p in await workflow.list_photos(quote_id)],
        appraisals=[AppraisalResponse.model_validate(a) for a in await workflow.list_appraisals(quote_id)],
    )


@router.delete("/{quote_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_quote(quote_id: str, workflow: WorkflowDep, cascade: bool = Query(False)):
    await workflow.delete_quote(quote_id, cascade=cascade)


@router.post("/{quote_id}/status", response_model=QuoteResponse)
async def update_status(quote_id: str, body: StatusUpdate, workflow: WorkflowDep):
    quote = await workflow.update_status(quote_id, body.status, notes=body.notes)
    return QuoteResponse.model_validate(quote)


@router.get("/{quote_id}/history", response_model=list[StatusChangeResponse])
async def get_history(quote_id: str, workflow: WorkflowDep):
    return [StatusChangeResponse.model_validate(e) for e in await workflow.get_status_history(quote_id)]


@router.post("/{quote_id}/coordinator-approval", response_model=QuoteResponse)
async def grant_coordinator_approval(quote_id: str, workflow: WorkflowDep):
    quote = await workflow.grant_coordinator_approval(quote_id)
    return QuoteResponse.model_validate(quote)


# Line item endpoints
@router.post(
    "/{quote_id}/line-items",
    response_model=LineItemResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_line_item(quote_id: str, body: LineItemCreate, workflow: WorkflowDep):
    """Price a catalog service onto the quote."""
    line = await workflow.add_line_item(
        quote_id,
        body.service_id,
        quantity=body.quantity,
        labor_minutes=body.labor_minutes,
        metal_type=body.metal_type,
        metal_weight_grams=body.metal_weight_grams,
        policy=body.policy,
    )
    return LineItemResponse.model_validate(line)


@router.put("/{quote_id}/line-items/{line_id}/override", response_model=LineItemResponse)
async def override_line_item(quote_id: str, line_id: str, body: PriceOverride, workflow: WorkflowDep):
    line = await workflow.override_line_item(quote_id, line_id, body.value, body.reason)
    return LineItemResponse.model_validate(line)


@router.delete("/{quote_id}/line-items/{line_id}", response_model=QuoteResponse)
async def remove_line_item(quote_id: str, line_id: str, workflow: WorkflowDep):
    quote = await workflow.remove_line_item(quote_id, line_id)
    return QuoteResponse.model_validate(quote)


# Photos and appraisals
@router.post("/{quote_id}/photos", response_model=PhotoResponse, status_code=status.HTTP_201_CREATED)
async def add_photo(quote_id: str, body: PhotoCreate, workflow: WorkflowDep):
    photo = await workflow.add_photo(quote_id, body.asset_url, body.caption)
    return PhotoResponse.model_validate(photo)


@router.delete("/{quote_id}/photos/{photo_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_photo(quote_id: str, photo_id: str, workflow: WorkflowDep):
    await workflow.remove_photo(quote_id, photo_id)


@router.post(
    "/{quote_id}/appraisals",
    response_model=AppraisalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_appraisal(quote_id: str, body: AppraisalCreate, workflow: WorkflowDep):
    request = AppraisalRequest(
        **body.model_dump(exclude={"original_appraisal_date", "fee_override", "override_reason"}),
        original_appraisal_date=as_utc(body.original_appraisal_date),
    )
    appraisal = await workflow.add_appraisal(
        quote_id,
        request,
        fee_override=body.fee_override,
        override_reason=body.override_reason,
    )
    return AppraisalResponse.model_validate(appraisal)
