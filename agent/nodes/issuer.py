"""
certificate_issuer node — run the issuance orchestrator with the webroot
challenge responder.
"""
from __future__ import annotations

import logging

from acme_client.http_challenge import WebrootChallengeResponder
from agent.issuance import IssuanceError, issue
from agent.state import AgentState

logger = logging.getLogger(__name__)


def certificate_issuer(state: AgentState) -> dict:
    """
    Obtain a new certificate covering the primary domain and all alternates.

    Returns updates to: issued, or failed_phase + error_log on failure.
    """
    domains = [state["domain"], *(state.get("alternate_names") or [])]
    responder = WebrootChallengeResponder(state["challenge_base_path"])

    try:
        issued = issue(
            account_email=state["account_email"],
            directory_url=state["directory_url"],
            domains=domains,
            responder=responder,
        )
    except IssuanceError as exc:
        error = f"obtaining certificate failed during {exc}"
        logger.error(error)
        return {
            "failed_phase": exc.phase.value,
            "error_log": state.get("error_log", []) + [error],
        }

    logger.info("Certificate issued for %s", ", ".join(issued.domains or domains))
    return {"issued": issued}
