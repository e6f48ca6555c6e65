"""
Pricing API routes: counter estimates for repairs and appraisals.
"""

from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from repair_estimator.api.dependencies import PricingEngineDep, SessionDep, SettingsDep, as_utc
from repair_estimator.exceptions import NotFoundError
from repair_estimator.models.appraisal import AppraisalType
from repair_estimator.models.catalog import MetalType
from repair_estimator.models.pricing import PricingPolicy
from repair_estimator.models.quote import RushType
from repair_estimator.models.records import RecordType
from repair_estimator.models.user import UserRole
from repair_estimator.schemas import AppraisalFeeResponse, PriceResultResponse
from repair_estimator.services.pricing.appraisal import AppraisalRequest, calculate_appraisal_fee
from repair_estimator.services.pricing.engine import PriceRequest, detect_exempt_item

router = APIRouter()


class EstimateRequest(BaseModel):
    service_id: str
    labor_minutes: int | None = Field(default=None, ge=0)
    metal_type: MetalType | None = None
    metal_weight_grams: Decimal | None = Field(default=None, ge=0)
    is_rush: bool = False
    rush_type: RushType | None = None
    requested_due_date: datetime | None = None
    policy: PricingPolicy | None = None
    sales_sku: str | None = None
    labor_role: UserRole = UserRole.BENCH_JEWELER


class AppraisalEstimateRequest(BaseModel):
    appraisal_type: AppraisalType
    item_count: int = Field(ge=1)
    largest_carat_weight: Decimal = Field(default=Decimal("0"), ge=0)
    is_update: bool = False
    original_appraisal_date: datetime | None = None
    expedited: bool = False
    sarin_report: bool = False
    gem_id: bool = False
    photo_documentation: bool = False


@router.post("/estimate", response_model=PriceResultResponse)
async def estimate_price(
    body: EstimateRequest,
    session: SessionDep,
    engine: PricingEngineDep,
    app_settings: SettingsDep,
):
    """Price a catalog service without attaching it to a quote."""
    service = await engine.rates.get_service(body.service_id)
    if service.company_id != session.company_id:
        raise NotFoundError(RecordType.SERVICE, body.service_id)
    policy = body.policy
    if policy is None:
        exempt = detect_exempt_item(body.sales_sku, app_settings.pricing.exempt_sku_prefixes)
        policy = PricingPolicy.EXEMPT if exempt else PricingPolicy.STANDARD

    request = PriceRequest(
        company_id=session.company_id,
        labor_minutes=service.default_labor_minutes if body.labor_minutes is None else body.labor_minutes,
        metal_type=body.metal_type,
        metal_weight_grams=body.metal_weight_grams,
        is_rush=body.is_rush,
        policy=policy,
        rush_type=body.rush_type,
        requested_due_date=as_utc(body.requested_due_date),
        labor_role=body.labor_role,
    )
    result = await engine.calculate_price(service, request)
    return PriceResultResponse.model_validate(result)


@router.post("/appraisal", response_model=AppraisalFeeResponse)
async def estimate_appraisal(
    body: AppraisalEstimateRequest,
    session: SessionDep,
    app_settings: SettingsDep,
):
    """Appraisal fee quote for the counter."""
    result = calculate_appraisal_fee(
        AppraisalRequest(
            **body.model_dump(exclude={"original_appraisal_date"}),
            original_appraisal_date=as_utc(body.original_appraisal_date),
        ),
        now=datetime.now(timezone.utc),
        settings=app_settings.appraisal,
    )
    return AppraisalFeeResponse.model_validate(result)
