"""
summary_reporter node — log the outcome of the run.
"""
from __future__ import annotations

import logging

import structlog

from agent.state import AgentState

logger = logging.getLogger(__name__)
events = structlog.get_logger("certrenew.summary")


def summary_reporter(state: AgentState) -> dict:
    """Emit the human-readable result line and a structured `run_summary` event."""
    decision = state.get("decision")
    failed_phase = state.get("failed_phase")

    if failed_phase:
        outcome = "failed"
        logger.error("Run failed during %s: %s", failed_phase, "; ".join(state.get("error_log", [])))
    elif decision is None or not decision.renew:
        outcome = "kept"
        logger.info("Certificate is still valid and not due for renewal")
    elif state.get("reloaded"):
        outcome = "renewed"
        logger.info("Certificate obtained and service reloaded successfully")
    else:
        outcome = "renewed"
        logger.info("Certificate obtained and saved to %s", state["cert_path"])

    events.info(
        "run_summary",
        domains=[state["domain"], *(state.get("alternate_names") or [])],
        decision="renew" if decision is not None and decision.renew else "keep",
        reason=decision.reason.value if decision is not None else None,
        days_remaining=decision.days_remaining if decision is not None else None,
        outcome=outcome,
        failed_phase=failed_phase,
        errors=len(state.get("error_log", [])),
    )
    return {}
