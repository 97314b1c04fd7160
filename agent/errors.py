"""
Run-level error taxonomy.

Protocol errors live next to the code that raises them (AcmeError in
acme_client/client.py, IssuanceError in agent/issuance.py, certificate
evaluation errors in agent/renewal.py).
"""
from __future__ import annotations


class ConfigurationError(Exception):
    """Required configuration is missing or invalid; the run never starts."""


class PersistenceError(Exception):
    """The issued certificate or key could not be written to disk."""


class ReloadError(Exception):
    """The dependent service could not be reloaded.

    The new certificate is already on disk at this point but is not being
    served yet.
    """


class RunCancelled(BaseException):
    """
    Raised from the termination signal handler.

    Derives from BaseException so ``except Exception`` in the workflow nodes
    does not turn a cancellation into an ordinary phase failure.
    """

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"cancelled by signal {signum}")
