"""
service_reloader node — tell the web server to pick up the new certificate.
"""
from __future__ import annotations

import logging
import shlex
import subprocess

from agent.errors import ReloadError
from agent.state import AgentState

logger = logging.getLogger(__name__)


def reload_service(command: str) -> None:
    """
    Run *command* (split shell-style, executed without a shell).

    Raises ReloadError if the program cannot be started or exits non-zero.
    """
    argv = shlex.split(command)
    logger.info("Reloading service: %s", " ".join(argv))
    try:
        subprocess.run(argv, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as exc:
        output = (exc.stderr or exc.stdout or "").strip()
        raise ReloadError(
            f"{argv[0]} exited with status {exc.returncode}: {output or 'no output'}"
        ) from exc
    except OSError as exc:
        raise ReloadError(f"could not run {argv[0]}: {exc}") from exc


def service_reloader(state: AgentState) -> dict:
    """
    Returns updates to: reloaded, or failed_phase + error_log on failure.
    An empty reload_command skips activation.
    """
    command = (state.get("reload_command") or "").strip()
    if not command:
        logger.info("No reload command configured — skipping service reload")
        return {"reloaded": False}

    try:
        reload_service(command)
    except ReloadError as exc:
        error = (
            f"reloading service failed: {exc} "
            f"(new certificate is on disk at {state['cert_path']} but not yet active)"
        )
        logger.error(error)
        return {
            "failed_phase": "activation",
            "error_log": state.get("error_log", []) + [error],
        }

    return {"reloaded": True}
