"""
storage_manager node — write the just-issued certificate chain and key.
"""
from __future__ import annotations

import logging

from agent.errors import PersistenceError
from agent.state import AgentState
from storage import filesystem as fs

logger = logging.getLogger(__name__)


def storage_manager(state: AgentState) -> dict:
    """
    Persist `issued` to cert_path / key_path, then drop it from state.

    Returns updates to: certificate_written, issued, or failed_phase +
    error_log on failure.
    """
    issued = state.get("issued")
    if issued is None:
        error = "storage_manager: no issued certificate in state"
        logger.error(error)
        return {
            "failed_phase": "persistence",
            "error_log": state.get("error_log", []) + [error],
        }

    try:
        fs.save_certificate_and_key(issued, state["cert_path"], state["key_path"])
    except PersistenceError as exc:
        error = f"saving certificate and key failed: {exc}"
        logger.error(error)
        return {
            "failed_phase": "persistence",
            "issued": None,
            "error_log": state.get("error_log", []) + [error],
        }

    return {"certificate_written": True, "issued": None}
