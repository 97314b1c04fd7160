"""
Certificate Renewal Agent — CLI entry point.

Usage:
  python main.py --once                                 # Check once, renew if needed, exit
  python main.py --schedule                             # Check now, then daily at SCHEDULE_TIME
  python main.py --once --domains example.com www.example.com   # Override DOMAIN / SAN
"""
from __future__ import annotations

import argparse
import logging
import signal
import sys

import structlog
from pydantic import ValidationError

from agent.errors import ConfigurationError, RunCancelled

# ── Logging setup ─────────────────────────────────────────────────────────────

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger(__name__)


# ── Agent runner ──────────────────────────────────────────────────────────────


def load_settings():
    """
    Return the settings singleton.

    Raises ConfigurationError if the environment holds an invalid value
    (e.g. a negative EXPIRY_DAYS_THRESHOLD).
    """
    try:
        from config import settings
    except ValidationError as exc:
        raise ConfigurationError(f"invalid configuration: {exc}") from exc
    return settings


def resolve_domains(domains: list[str] | None = None) -> list[str]:
    """
    Primary domain followed by alternates: *domains* if given, else DOMAIN + SAN.
    Raises ConfigurationError if no primary domain is configured.
    """
    settings = load_settings()
    from config import full_domains

    names = list(domains) if domains else full_domains(settings)
    if not names or not names[0]:
        raise ConfigurationError("DOMAIN environment variable is not set")
    return names


def run_once(domains: list[str] | None = None) -> dict:
    """
    Execute one check-and-renew cycle and return the final state.

    *domains* overrides DOMAIN (first entry) and SAN (the rest).
    Raises ConfigurationError if no primary domain is configured.
    """
    from agent.graph import build_graph, initial_state

    names = resolve_domains(domains)
    settings = load_settings()

    log.info("Checking certificate for %s", ", ".join(names))

    graph = build_graph()
    state = initial_state(
        domain=names[0],
        alternate_names=names[1:],
        cert_path=settings.CERT_PATH,
        key_path=settings.KEY_PATH,
        directory_url=settings.CA_DIR_URL,
        account_email=settings.EMAIL,
        expiry_threshold_days=settings.EXPIRY_DAYS_THRESHOLD,
        challenge_base_path=settings.CHALLENGE_BASE_PATH,
        reload_command=settings.RELOAD_COMMAND,
    )

    return graph.invoke(state)


def run_scheduled(domains: list[str] | None = None) -> None:
    """
    Run the agent now and then daily at SCHEDULE_TIME.

    Configuration errors are fatal before anything is scheduled; failures of
    individual runs are logged and retried on the next tick.
    """
    import time

    import schedule

    resolve_domains(domains)
    schedule_time = load_settings().SCHEDULE_TIME
    log.info("Scheduling daily certificate check at %s", schedule_time)

    def job() -> None:
        log.info("Scheduled run triggered")
        try:
            final_state = run_once(domains=domains)
        except ConfigurationError:
            raise
        except Exception as exc:
            log.exception("Scheduled run failed: %s", exc)
            return
        if final_state.get("failed_phase"):
            log.error("Scheduled run failed during %s", final_state["failed_phase"])

    schedule.every().day.at(schedule_time).do(job)

    log.info("Running initial check immediately...")
    job()

    log.info("Entering schedule loop — press Ctrl+C to stop")
    while True:
        schedule.run_pending()
        time.sleep(60)


def _handle_termination(signum, frame) -> None:
    log.info("Shutting down gracefully...")
    raise RunCancelled(signum)


def install_signal_handlers() -> None:
    """Abort the in-flight run on SIGTERM / SIGINT instead of finishing it silently."""
    signal.signal(signal.SIGTERM, _handle_termination)
    signal.signal(signal.SIGINT, _handle_termination)


# ── CLI ───────────────────────────────────────────────────────────────────────


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Certificate Renewal Agent",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --once
  python main.py --schedule
  python main.py --once --domains example.com www.example.com api.example.com
        """,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Check the certificate once, renew if needed, and exit",
    )
    parser.add_argument(
        "--schedule",
        action="store_true",
        help="Run now and then on the configured daily schedule (SCHEDULE_TIME in .env)",
    )
    parser.add_argument(
        "--domains",
        nargs="+",
        metavar="DOMAIN",
        help="Override DOMAIN (first entry) and SAN (remaining entries)",
    )

    args = parser.parse_args(argv)

    if not args.once and not args.schedule:
        parser.print_help()
        sys.exit(1)

    install_signal_handlers()

    try:
        if args.schedule:
            run_scheduled(domains=args.domains)
            return
        final_state = run_once(domains=args.domains)
    except ConfigurationError as exc:
        log.error("Error: %s", exc)
        sys.exit(1)
    except RunCancelled as exc:
        log.error("Run cancelled by signal %d", exc.signum)
        sys.exit(128 + exc.signum)

    if final_state.get("failed_phase"):
        sys.exit(1)


if __name__ == "__main__":
    main()
