"""
LangGraph StateGraph builder for the certificate renewal agent.

Graph topology:
  START
    → certificate_scanner
    → [conditional: no_renewal → summary_reporter → END]
    → certificate_issuer
    → [conditional: failed → summary_reporter]
    → storage_manager
    → [conditional: failed → summary_reporter]
    → service_reloader
    → summary_reporter
    → END

Every step runs once; a failed run is retried by invoking the graph again
on the next schedule, never inside the graph.
"""
from __future__ import annotations

from langgraph.graph import END, START, StateGraph

from agent.nodes.issuer import certificate_issuer
from agent.nodes.reloader import service_reloader
from agent.nodes.reporter import summary_reporter
from agent.nodes.router import phase_router, renewal_router
from agent.nodes.scanner import certificate_scanner
from agent.nodes.storage import storage_manager
from agent.state import AgentState


def build_graph():
    """
    Build and compile the renewal StateGraph.

    Returns:
        CompiledGraph ready to invoke / stream.
    """
    builder = StateGraph(AgentState)

    # ── Register nodes ────────────────────────────────────────────────────
    builder.add_node("certificate_scanner", certificate_scanner)
    builder.add_node("certificate_issuer", certificate_issuer)
    builder.add_node("storage_manager", storage_manager)
    builder.add_node("service_reloader", service_reloader)
    builder.add_node("summary_reporter", summary_reporter)

    # ── Edges ─────────────────────────────────────────────────────────────
    builder.add_edge(START, "certificate_scanner")

    builder.add_conditional_edges(
        "certificate_scanner",
        renewal_router,
        {
            "renewal_required": "certificate_issuer",
            "no_renewal": "summary_reporter",
        },
    )

    builder.add_conditional_edges(
        "certificate_issuer",
        phase_router,
        {"ok": "storage_manager", "failed": "summary_reporter"},
    )

    # Reload is only attempted once both files are written
    builder.add_conditional_edges(
        "storage_manager",
        phase_router,
        {"ok": "service_reloader", "failed": "summary_reporter"},
    )

    builder.add_edge("service_reloader", "summary_reporter")
    builder.add_edge("summary_reporter", END)

    return builder.compile()


def initial_state(
    domain: str,
    alternate_names: list[str] | None = None,
    cert_path: str = "/etc/ssl/private/fullchain.pem",
    key_path: str = "/etc/ssl/private/key.pem",
    directory_url: str = "https://acme-staging-v02.api.letsencrypt.org/directory",
    account_email: str = "",
    expiry_threshold_days: int = 30,
    challenge_base_path: str = "/usr/share/nginx/challenge/.well-known/acme-challenge",
    reload_command: str = "nginx -s reload",
) -> dict:
    """
    Build the initial AgentState dict for a fresh run.
    Callers can override any field by merging the returned dict.
    """
    return {
        "domain": domain,
        "alternate_names": list(alternate_names or []),
        "cert_path": cert_path,
        "key_path": key_path,
        "directory_url": directory_url,
        "account_email": account_email,
        "expiry_threshold_days": expiry_threshold_days,
        "challenge_base_path": challenge_base_path,
        "reload_command": reload_command,
        "decision": None,
        "issued": None,
        "certificate_written": False,
        "reloaded": False,
        "error_log": [],
        "failed_phase": None,
    }
