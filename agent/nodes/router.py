"""
Conditional edge logic for the renewal workflow.

These are not nodes but routing functions used with
graph.add_conditional_edges().
"""
from __future__ import annotations

from agent.state import AgentState


def renewal_router(state: AgentState) -> str:
    """
    After certificate_scanner: issue a new certificate or finish.

    Returns: "renewal_required" | "no_renewal"
    """
    decision = state.get("decision")
    return "renewal_required" if decision is not None and decision.renew else "no_renewal"


def phase_router(state: AgentState) -> str:
    """
    After issuer / storage: continue the happy path or stop at the reporter.

    Returns: "ok" | "failed"
    """
    return "failed" if state.get("failed_phase") else "ok"
