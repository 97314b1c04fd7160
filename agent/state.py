"""
Agent state definition for the certificate renewal workflow.

Notes:
  - The ACME account key is NOT stored in state: it is generated inside the
    issuer node and discarded when that node returns.
  - `issued` carries the new certificate and its private key from the issuer
    to the storage node only; storage_manager clears it once the files are
    written.
  - `failed_phase` is set by whichever node failed and routes the graph
    straight to the reporter.
"""
from __future__ import annotations

from typing import List, Optional

from typing_extensions import TypedDict

from agent.issuance import IssuedCertificate
from agent.renewal import RenewalDecision


class AgentState(TypedDict):
    # ── Configuration ──────────────────────────────────────────────────────
    domain: str
    alternate_names: List[str]
    cert_path: str
    key_path: str
    directory_url: str
    account_email: str
    expiry_threshold_days: int
    challenge_base_path: str
    reload_command: str

    # ── Decision ───────────────────────────────────────────────────────────
    decision: Optional[RenewalDecision]

    # ── Issuance / activation ──────────────────────────────────────────────
    issued: Optional[IssuedCertificate]
    certificate_written: bool
    reloaded: bool

    # ── Progress tracking ──────────────────────────────────────────────────
    error_log: List[str]
    failed_phase: Optional[str]       # key-generation | client-setup | registration | obtain | persistence | activation
