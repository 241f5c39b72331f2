"""API routes."""

from labor_engine.api.routes.compliance import router as compliance_router
from labor_engine.api.routes.health import router as health_router
from labor_engine.api.routes.payroll import router as payroll_router
from labor_engine.api.routes.tips import router as tips_router

__all__ = ["compliance_router", "health_router", "payroll_router", "tips_router"]
