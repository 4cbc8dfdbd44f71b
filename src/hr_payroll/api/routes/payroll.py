"""Payroll period API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from hr_payroll.api.dependencies import CompanyId, Processor
from hr_payroll.api.schemas import (
    ApprovalRequest,
    EmployeeOutcome,
    ErrorResponse,
    PayslipResponse,
    PeriodCreate,
    PeriodResponse,
    ProcessingResponse,
    SummaryResponse,
)
from hr_payroll.services.payroll_processor import PeriodNotFoundError, ProcessingResult

router = APIRouter(prefix="/payroll/periods", tags=["payroll"])


def _processing_response(result: ProcessingResult) -> ProcessingResponse:
    return ProcessingResponse(
        payroll_period_id=result.payroll_period_id,
        status=result.status,
        succeeded=result.succeeded,
        skipped=[EmployeeOutcome(employee_id=e, reason=r) for e, r in result.skipped],
        failed=[EmployeeOutcome(employee_id=e, reason=r) for e, r in result.failed],
    )


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def create_period(
    processor: Processor,
    company_id: CompanyId,
    payload: PeriodCreate,
) -> PeriodResponse:
    """Open a draft payroll period for a calendar month."""
    period = await processor.create_period(
        company_id, payload.year, payload.month, payload.description
    )
    return PeriodResponse.model_validate(period)


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    processor: Processor,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> PeriodResponse:
    """Get a payroll period by ID."""
    period = await processor.get_period(period_id, company_id)
    if period is None:
        raise PeriodNotFoundError(period_id)
    return PeriodResponse.model_validate(period)


@router.post(
    "/{period_id}/process",
    response_model=ProcessingResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def process_period(
    processor: Processor,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> ProcessingResponse:
    """Generate payslips for a draft period."""
    result = await processor.process(period_id, company_id)
    return _processing_response(result)


@router.post(
    "/{period_id}/resume",
    response_model=ProcessingResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def resume_period(
    processor: Processor,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> ProcessingResponse:
    """Finish a period left in processing by an interrupted run."""
    result = await processor.resume(period_id, company_id)
    return _processing_response(result)


@router.post(
    "/{period_id}/approve",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_period(
    processor: Processor,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
    payload: ApprovalRequest,
) -> PeriodResponse:
    """Approve a processed period."""
    period = await processor.approve(period_id, payload.approver_id, company_id)
    return PeriodResponse.model_validate(period)


@router.get(
    "/{period_id}/summary",
    response_model=SummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_summary(
    processor: Processor,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> SummaryResponse:
    """Get base-currency totals for a period."""
    summary = await processor.summary(period_id, company_id)
    return SummaryResponse.model_validate(summary)


@router.get(
    "/{period_id}/payslips",
    response_model=list[PayslipResponse],
    responses={404: {"model": ErrorResponse}},
)
async def list_payslips(
    processor: Processor,
    company_id: CompanyId,
    period_id: Annotated[UUID, Path()],
) -> list[PayslipResponse]:
    """List the payslips generated for a period."""
    payslips = await processor.list_payslips(period_id, company_id)
    return [PayslipResponse.model_validate(p) for p in payslips]
