# liquidity/main.py
from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import Depends, FastAPI, Request, status
from fastapi.responses import JSONResponse

from liquidity import crud
from liquidity.core.config import settings
from liquidity.core.errors import ConfigError, LiquidityError
from liquidity.database import init_db, session_scope
from liquidity.fee_schedule import parse_tiers
from liquidity.monitoring import run_selftest
from liquidity.schemas import (
    CancelIn,
    CompleteIn,
    DeliveryReportOut,
    DenyIn,
    FeeTierIn,
    PayoutOut,
    PreviewIn,
    ProgramIn,
    ProgramOut,
    RedemptionOut,
    ReserveFundIn,
    ReserveHealthOut,
    ReserveOpenIn,
    ReviewIn,
    SubmitRedemption,
    SummaryIn,
    WorkflowOut,
)
from liquidity.services import LiquidityServices, build_services

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Guaranteed Liquidity Engine")

_services: LiquidityServices | None = None


def get_services() -> LiquidityServices:
    global _services
    if _services is None:
        _services = build_services(settings)
    return _services


@app.on_event("startup")
async def startup_event():
    try:
        init_db()
        logger.info("DB initialized")
    except Exception:
        logger.exception("DB init failed (startup). Continuing to boot app.")

    try:
        parse_tiers(settings.DEFAULT_FEE_TIERS)
    except ConfigError:
        # default tiers are used for every program created without its own table
        logger.exception("DEFAULT_FEE_TIERS is not a valid partition")
        raise


@app.exception_handler(LiquidityError)
async def liquidity_error_handler(request: Request, exc: LiquidityError):
    if exc.http_status >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
    return JSONResponse({"ok": False, "error": exc.code, "detail": exc.message}, status_code=exc.http_status)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(
        {"ok": False, "error": "invalid_request", "detail": str(exc)},
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
    )


def _program_out(prog) -> ProgramOut:
    return ProgramOut(
        offering_id=prog.offering_id,
        property_name=prog.property_name,
        enabled=prog.enabled,
        fee_tiers=[FeeTierIn(**t.as_dict()) for t in crud.program_tiers(prog)],
        min_holding_days=prog.min_holding_days,
        max_monthly_amount=prog.max_monthly_amount,
        admin_emails=crud.program_admin_emails(prog),
        sponsor_email=prog.sponsor_email,
    )


# -------- service --------

@app.get("/")
async def root():
    return {"message": "Guaranteed Liquidity Engine is running"}


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/ready")
def ready(svc: LiquidityServices = Depends(get_services)):
    result = run_selftest(svc.settings, svc.session_factory, quick=True)
    return {"status": result.get("status", "unknown"), "checks": result.get("checks", [])}


@app.get("/selftest")
def selftest(svc: LiquidityServices = Depends(get_services)):
    return run_selftest(svc.settings, svc.session_factory, quick=False)


# -------- programs --------

@app.put("/liquidity/programs/{offering_id}", response_model=ProgramOut)
def put_program(offering_id: str, body: ProgramIn, svc: LiquidityServices = Depends(get_services)):
    raw_tiers = (
        [t.model_dump() for t in body.fee_tiers] if body.fee_tiers is not None else svc.settings.DEFAULT_FEE_TIERS
    )
    try:
        tiers = parse_tiers(raw_tiers)
    except ConfigError as e:
        # rejected at configuration time, nothing stored
        return JSONResponse(
            {"ok": False, "error": e.code, "detail": e.message},
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    min_days = body.min_holding_days
    with session_scope(svc.session_factory) as db:
        prog = crud.upsert_program(
            db,
            offering_id=offering_id,
            fee_tiers=tiers,
            property_name=body.property_name,
            enabled=body.enabled,
            min_holding_days=svc.settings.DEFAULT_MIN_HOLDING_DAYS if min_days is None else min_days,
            max_monthly_amount=body.max_monthly_amount,
            admin_emails=body.admin_emails,
            sponsor_email=body.sponsor_email,
        )
        return _program_out(prog)


@app.get("/liquidity/programs/{offering_id}", response_model=ProgramOut)
def get_program(offering_id: str, svc: LiquidityServices = Depends(get_services)):
    with session_scope(svc.session_factory) as db:
        return _program_out(crud.require_program(db, offering_id))


@app.post("/liquidity/programs/{offering_id}/summary", response_model=DeliveryReportOut)
async def sponsor_summary(offering_id: str, body: SummaryIn, svc: LiquidityServices = Depends(get_services)):
    report = await svc.alerts.send_sponsor_summary(offering_id, body.year, body.month)
    return DeliveryReportOut.model_validate(report)


# -------- reserves --------

@app.post("/liquidity/reserves/{offering_id}", response_model=ReserveHealthOut)
def open_reserve(offering_id: str, body: ReserveOpenIn, svc: LiquidityServices = Depends(get_services)):
    with session_scope(svc.session_factory) as db:
        return svc.ledger.open_account(db, offering_id=offering_id, balance=body.balance, target=body.target)


@app.post("/liquidity/reserves/{offering_id}/fund", response_model=ReserveHealthOut)
def fund_reserve(offering_id: str, body: ReserveFundIn, svc: LiquidityServices = Depends(get_services)):
    with session_scope(svc.session_factory) as db:
        return svc.ledger.fund(db, offering_id=offering_id, amount=body.amount)


@app.get("/liquidity/reserves/{offering_id}/health", response_model=ReserveHealthOut)
def reserve_health(offering_id: str, svc: LiquidityServices = Depends(get_services)):
    with session_scope(svc.session_factory) as db:
        return svc.ledger.query_health(db, offering_id)


# -------- redemptions --------

@app.post("/liquidity/preview", response_model=PayoutOut)
def preview(body: PreviewIn, svc: LiquidityServices = Depends(get_services)):
    result = svc.workflow.preview(
        offering_id=body.offering_id,
        quantity=body.quantity,
        token_price=body.token_price,
        holding_start_date=body.holding_start_date,
    )
    p = result.payout
    return PayoutOut(
        quantity=p.quantity,
        token_price=p.token_price,
        holding_days=result.holding_days,
        holding_months=p.holding_months,
        gross_value=p.gross_value,
        fee_percent=p.fee_percent,
        fee_amount=p.fee_amount,
        net_payout=p.net_payout,
        tier_applied=FeeTierIn(**p.tier_applied.as_dict()),
        eligible=result.eligible,
    )


@app.post("/liquidity/requests", response_model=WorkflowOut, status_code=status.HTTP_201_CREATED)
async def submit_request(body: SubmitRedemption, svc: LiquidityServices = Depends(get_services)):
    return WorkflowOut.model_validate(await svc.workflow.submit(body))


@app.get("/liquidity/requests", response_model=List[RedemptionOut])
def list_requests(
    status: Optional[str] = None,
    offering_id: Optional[str] = None,
    investor_id: Optional[str] = None,
    limit: int = 50,
    svc: LiquidityServices = Depends(get_services),
):
    return svc.workflow.list_requests(status=status, offering_id=offering_id, investor_id=investor_id, limit=limit)


@app.get("/liquidity/requests/{request_id}", response_model=RedemptionOut)
def get_request(request_id: int, svc: LiquidityServices = Depends(get_services)):
    return svc.workflow.get(request_id)


@app.post("/liquidity/requests/{request_id}/approve", response_model=WorkflowOut)
async def approve_request(request_id: int, body: ReviewIn, svc: LiquidityServices = Depends(get_services)):
    return WorkflowOut.model_validate(await svc.workflow.approve(request_id, reviewed_by=body.reviewed_by))


@app.post("/liquidity/requests/{request_id}/deny", response_model=WorkflowOut)
async def deny_request(request_id: int, body: DenyIn, svc: LiquidityServices = Depends(get_services)):
    return WorkflowOut.model_validate(await svc.workflow.deny(request_id, body.reason, reviewed_by=body.reviewed_by))


@app.post("/liquidity/requests/{request_id}/processing", response_model=WorkflowOut)
async def begin_processing(request_id: int, svc: LiquidityServices = Depends(get_services)):
    return WorkflowOut.model_validate(await svc.workflow.begin_processing(request_id))


@app.post("/liquidity/requests/{request_id}/complete", response_model=WorkflowOut)
async def complete_request(request_id: int, body: CompleteIn, svc: LiquidityServices = Depends(get_services)):
    return WorkflowOut.model_validate(await svc.workflow.complete(request_id, body.payout_reference))


@app.post("/liquidity/requests/{request_id}/cancel", response_model=WorkflowOut)
async def cancel_request(request_id: int, body: CancelIn, svc: LiquidityServices = Depends(get_services)):
    return WorkflowOut.model_validate(await svc.workflow.cancel(request_id, investor_id=body.investor_id))
