# liquidity/core/errors.py
from __future__ import annotations


class LiquidityError(Exception):
    """Base class for errors surfaced to the caller of a workflow step."""

    code = "liquidity_error"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class ConfigError(LiquidityError):
    code = "config_error"
    http_status = 500


class InsufficientReserve(LiquidityError):
    code = "insufficient_reserve"
    http_status = 409

    def __init__(self, offering_id: str, requested, available):
        super().__init__(
            f"reserve for {offering_id} cannot cover {requested} (available {available})"
        )
        self.offering_id = offering_id
        self.requested = requested
        self.available = available


class MonthlyCapExceeded(LiquidityError):
    code = "monthly_cap_exceeded"
    http_status = 409


class ProgramUnavailable(LiquidityError):
    code = "program_unavailable"
    http_status = 409


class NotEligible(LiquidityError):
    code = "not_eligible"
    http_status = 422


class InvalidTransition(LiquidityError):
    code = "invalid_transition"
    http_status = 409

    def __init__(self, request_id: int, current: str, target: str):
        super().__init__(f"request {request_id} is {current}, cannot move to {target}")
        self.request_id = request_id
        self.current = current
        self.target = target


class ReservationClosed(LiquidityError):
    code = "reservation_closed"
    http_status = 409


class RequestNotFound(LiquidityError):
    code = "request_not_found"
    http_status = 404


class ReserveAccountNotFound(LiquidityError):
    code = "reserve_account_not_found"
    http_status = 404


class ProgramNotFound(LiquidityError):
    code = "program_not_found"
    http_status = 404


class ChannelDeliveryError(LiquidityError):
    """A single channel failed; recorded in the delivery report, never raised to callers."""

    code = "channel_delivery_error"
    http_status = 502


class ReserveAccountExists(LiquidityError):
    """Opening is one-time; top-ups go through ReserveLedger.fund."""

    code = "reserve_account_exists"
    http_status = 409
