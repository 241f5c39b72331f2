"""Pay figure endpoints."""

import logging

from fastapi import APIRouter

from labor_engine.api.dependencies import RestaurantId
from labor_engine.api.schemas import ErrorResponse, PayrollRequest, PayrollResponse
from labor_engine.calculators import PayPeriodEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payroll", tags=["payroll"])


@router.post(
    "/calculate",
    response_model=PayrollResponse,
    responses={422: {"model": ErrorResponse}},
)
def calculate_payroll(body: PayrollRequest, restaurant_id: RestaurantId) -> PayrollResponse:
    """Calculate tiered hours and pay for every employee in the request.

    Stateless: nothing is persisted. Runs in the threadpool since the
    engine fans employees out over its own worker pool.
    """
    engine = PayPeriodEngine()
    summary = engine.calculate_period(
        employees=[e.to_domain() for e in body.employees],
        punches=[p.to_domain() for p in body.punches],
        rules=body.rules.to_domain(),
        period_start=body.period_start,
        period_end=body.period_end,
        adjustments=[a.to_domain() for a in body.adjustments],
        tips_cents=body.tips_cents,
    )
    logger.info(
        "Payroll calculated for restaurant %s: %d employees",
        restaurant_id,
        len(summary.results),
    )
    return PayrollResponse.from_summary(summary)
