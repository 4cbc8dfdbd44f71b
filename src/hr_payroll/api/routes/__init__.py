"""API routes."""

from hr_payroll.api.routes.currency import router as currency_router
from hr_payroll.api.routes.health import router as health_router
from hr_payroll.api.routes.payroll import router as payroll_router

__all__ = ["currency_router", "health_router", "payroll_router"]
