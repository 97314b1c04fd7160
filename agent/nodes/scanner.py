"""
certificate_scanner node — evaluate the installed certificate and record the
renewal decision.
"""
from __future__ import annotations

import logging

from agent.renewal import (
    CertificateEvaluationError,
    RenewalDecision,
    RenewalReason,
    RenewalTarget,
    evaluate,
)
from agent.state import AgentState

logger = logging.getLogger(__name__)


def certificate_scanner(state: AgentState) -> dict:
    """
    Run the decision engine for the configured domain set.

    A certificate that exists but cannot be parsed never blocks re-issuance:
    it is logged as an error and turned into a renew decision.

    Returns updates to: decision, error_log on parse failure.
    """
    target = RenewalTarget(state["domain"], tuple(state.get("alternate_names") or ()))
    cert_path = state["cert_path"]

    try:
        decision = evaluate(cert_path, target.domains, state["expiry_threshold_days"])
    except CertificateEvaluationError as exc:
        error = f"existing certificate at {cert_path} could not be parsed: {exc}"
        logger.error("%s — attempting renewal anyway", error)
        return {
            "decision": RenewalDecision(True, RenewalReason.PARSE_FAILURE, detail=str(exc)),
            "error_log": state.get("error_log", []) + [error],
        }

    if decision.reason is RenewalReason.ABSENT:
        logger.info("%s → no certificate found at %s — will obtain one", target.domain, cert_path)
    elif decision.renew:
        logger.info("%s → renewal required (%s: %s)", target.domain, decision.reason.value, decision.detail)
    else:
        logger.info("%s → certificate valid for %d more days", target.domain, decision.days_remaining)

    return {"decision": decision}
