# liquidity/monitoring.py
from __future__ import annotations

import time
from typing import Any, Dict, List

from sqlalchemy import text
from sqlalchemy.orm import sessionmaker

from liquidity.core.config import Settings
from liquidity.core.errors import ConfigError
from liquidity.fee_schedule import parse_tiers


def _check(name: str, ok: bool, detail: str = "", extra: Dict[str, Any] | None = None) -> Dict[str, Any]:
    row: Dict[str, Any] = {"name": name, "ok": bool(ok)}
    if detail:
        row["detail"] = detail
    if extra:
        row["extra"] = extra
    return row


def run_selftest(settings: Settings, session_factory: sessionmaker, quick: bool = True) -> dict:
    checks: List[Dict[str, Any]] = []

    # --- ENV sanity ---
    checks.append(_check("env:DATABASE_URL", bool(settings.DATABASE_URL)))

    # --- DB ---
    db_ok = False
    db_err = ""
    t0 = time.time()
    try:
        db = session_factory()
        try:
            db.execute(text("SELECT 1"))
            db_ok = True
        finally:
            db.close()
    except Exception as e:
        db_err = repr(e)

    checks.append(_check("db:select1", db_ok, detail=db_err, extra={"ms": int((time.time() - t0) * 1000)}))

    if not quick:
        # optional channels: reported for operators, never fail the check
        checks.append(_check("env:RESEND_API_KEY", True, detail="set" if settings.RESEND_API_KEY else "missing (email skipped)"))
        checks.append(
            _check(
                "env:LIQUIDITY_WEBHOOK_URL",
                True,
                detail="set" if settings.LIQUIDITY_WEBHOOK_URL else "missing (webhook skipped)",
            )
        )
        checks.append(
            _check(
                "env:LIQUIDITY_WEBHOOK_SECRET",
                True,
                detail="signing enabled" if settings.LIQUIDITY_WEBHOOK_SECRET else "missing (payloads unsigned)",
            )
        )

        tiers_ok = True
        tiers_err = ""
        try:
            parse_tiers(settings.DEFAULT_FEE_TIERS)
        except ConfigError as e:
            tiers_ok = False
            tiers_err = e.message
        checks.append(_check("config:DEFAULT_FEE_TIERS", tiers_ok, detail=tiers_err))

    status = "ok" if all(c.get("ok") for c in checks) else "degraded"
    return {"status": status, "checks": checks}
