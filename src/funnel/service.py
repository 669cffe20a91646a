"""Quote request service: intake, one browser session, one funnel run, history"""

import time
from typing import Dict, Any, Optional
from uuid import uuid4
from loguru import logger

from src.analytics.metrics import MetricsTracker
from src.browser.sanitize import sanitize_pii
from src.browser.session import BrowserSession
from src.funnel.config import FunnelConfig, load_funnel_config
from src.funnel.errors import ValidationError, error_kind
from src.funnel.machine import FunnelStateMachine
from src.funnel.models import RunResult
from src.intake.normalize import build_run_input, normalize_payload
from src.intake.validator import validate_request
from src.memory.models import SubmissionRecord
from src.memory.store import SubmissionStore


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def submit_quote_request(
    payload: Dict[str, Any],
    config: Optional[FunnelConfig] = None,
    store: Optional[SubmissionStore] = None,
    session_factory=BrowserSession,
    correlation_id: Optional[str] = None,
    first_step_only: bool = False
) -> Dict[str, Any]:
    """
    Validate a quote request, run the funnel, and record the outcome.

    Validation and fraud failures return before any browser session opens.

    Args:
        payload: Current or legacy request shape
        config: Funnel configuration (loaded from config.yaml when omitted)
        store: Submission history (skipped when None)
        session_factory: Async context manager yielding an object with .driver
        correlation_id: Unique ID for logging/tracing
        first_step_only: Validate the applicant only and stop after Personal Info

    Returns:
        {success, message, currentStage, errors?, quotes?, processingTime, ...}
    """
    correlation_id = correlation_id or uuid4().hex[:8]
    config = config or load_funnel_config()
    started = time.monotonic()
    request: Dict[str, Any] = {}
    metrics = MetricsTracker()

    logger.info(f"[{correlation_id}] Quote request received: {sanitize_pii(payload) if isinstance(payload, dict) else payload}")

    try:
        request = normalize_payload(payload)
        validate_request(request, first_step_only=first_step_only)
        if first_step_only:
            # Personal Info reads the applicant only
            request = dict(request, vehicles=[], drivers=[], policy={})
        run_input = build_run_input(request)
    except ValidationError as e:
        logger.warning(f"[{correlation_id}] Rejected before automation ({e.step}): {e}")
        result = RunResult(success=False, message=str(e), error_kind=e.kind, errors=e.errors, step=e.step)
        return _finish(result, request, metrics, store, correlation_id, started)

    if first_step_only:
        logger.info(f"[{correlation_id}] Running Personal Info only")
    else:
        logger.info(
            f"[{correlation_id}] Running funnel: {len(run_input.vehicles)} vehicle(s), {len(run_input.drivers)} driver(s)"
        )
    try:
        async with session_factory(config, correlation_id) as session:
            machine = FunnelStateMachine(session.driver, config, correlation_id, metrics=metrics)
            result = await machine.run(*run_input, first_step_only=first_step_only)
    except Exception as e:
        logger.exception(f"[{correlation_id}] Quote automation failed: {e}")
        result = RunResult(
            success=False,
            message=f"Quote automation failed: {e}",
            error_kind=error_kind(e),
            errors=[str(e)],
            step="complete_automation_error",
        )

    return _finish(result, request, metrics, store, correlation_id, started)


def _finish(
    result: RunResult,
    request: Dict[str, Any],
    metrics: MetricsTracker,
    store: Optional[SubmissionStore],
    correlation_id: str,
    started: float
) -> Dict[str, Any]:
    """Attach processing time and counts, persist the sanitized record"""
    processing_time = _elapsed_ms(started)
    output = result.to_output()
    output["processingTime"] = processing_time
    output["vehicleCount"] = len(request.get("vehicles") or [])
    output["driverCount"] = len(request.get("drivers") or [])

    if store is not None:
        record = SubmissionRecord(
            correlation_id=correlation_id,
            success=result.success,
            message=result.message,
            current_stage=result.current_stage,
            stage=result.stage.value if result.stage else None,
            step=result.step,
            error_kind=result.error_kind,
            errors=result.errors,
            quotes_found=len(result.quotes),
            quotes=output.get("quotes", []),
            vehicle_count=output["vehicleCount"],
            driver_count=output["driverCount"],
            request=sanitize_pii(request),
            metrics=metrics.get_summary(),
            processing_time_ms=processing_time,
        )
        submission_id = store.save_submission(record)
        if submission_id:
            output["submissionId"] = submission_id

    status = "completed" if result.success else "failed"
    logger.info(f"[{correlation_id}] Quote request {status} in {processing_time}ms")
    return output
