"""Command-line interface (CLI) entrypoint.

Objective:
    Provide a human-friendly CLI wrapper around
    :class:`prism.orchestrator.PrismOrchestrator`.

Responsibilities:
    - Parse arguments (subcommand, verbosity, output format).
    - Configure logging (including hiding the web UI's status polling from
      the access log).
    - Invoke the orchestrator and print a readable summary of pull requests.

High-level call tree:
    - :func:`main`
        - :func:`setup_logging`
            - installs :class:`_StatusPollAccessLogFilter`
        - instantiate :class:`PrismOrchestrator`
        - ``login``  -> :meth:`PrismOrchestrator.start_auth_flow`
            - :func:`print_device_code`
        - ``status`` -> :attr:`PrismOrchestrator.is_authenticated`
        - ``pulls``  -> :meth:`PrismOrchestrator.fetch_pull_requests`
            - :func:`print_pull_requests`
        - ``open``   -> :meth:`PrismOrchestrator.open_external_url`
        - ``serve``  -> ``uvicorn.run(prism.webapp.app)``
"""

import argparse
import json
import logging
import sys
from typing import Optional

from .config import PRCategory, get_settings
from .errors import PrismError
from .models import DeviceCodePrompt, PullRequestData
from .orchestrator import PrismOrchestrator

STATUS_POLL_PATH = "/api/auth/status"

SECTION_TITLES = {
    PRCategory.NEEDS_REVIEW: "Needs your review",
    PRCategory.APPROVED: "Approved",
    PRCategory.WAITING_FOR_REVIEWERS: "Waiting for reviewers",
    PRCategory.DRAFTS: "Drafts",
}


class _StatusPollAccessLogFilter(logging.Filter):
    """Filter to suppress uvicorn access logs for auth status polling.

    The web UI polls the status endpoint every few seconds while a sign-in is
    pending. This filter hides those lines unless the root logger is in DEBUG
    mode.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Determine whether a log record should be emitted.

        Args:
            record: Log record emitted by the logging framework.

        Returns:
            bool: True to allow emission, False to suppress.
        """
        if record.name == "uvicorn.access" and STATUS_POLL_PATH in record.getMessage():
            # Only show polling requests when running in DEBUG/verbose mode.
            return logging.getLogger().isEnabledFor(logging.DEBUG)
        return True


def setup_logging(level: str = "INFO") -> None:
    """
    Configure logging for the application.

    This sets the root logger level and installs the
    :class:`_StatusPollAccessLogFilter` on all root handlers and on the
    uvicorn access logger.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    poll_filter = _StatusPollAccessLogFilter()
    for handler in logging.getLogger().handlers:
        handler.addFilter(poll_filter)
    logging.getLogger("uvicorn.access").addFilter(poll_filter)


def print_device_code(prompt: DeviceCodePrompt) -> None:
    """Print device-code instructions to the console.

    Args:
        prompt: User code and verification URL.
    """
    print("\n" + "=" * 60)
    print("GITHUB SIGN-IN REQUIRED")
    print("=" * 60)
    print(f"\nOpen {prompt.verification_uri} and enter the code:\n")
    print(f"    {prompt.user_code}\n")
    print(f"The code expires in {prompt.expires_in // 60} minutes.")
    print("=" * 60 + "\n")


def print_pull_requests(data: PullRequestData, verbose: bool = False) -> None:
    """
    Print classified pull requests to console.

    Output format:
        - One section per bucket, in display order.
        - ``repo#number title (author)`` per pull request.
        - The URL underneath when ``verbose=True``.

    Args:
        data: Classified pull requests.
        verbose: If True, print URLs.
    """
    if not data.total:
        print("\nNo open pull requests.")
        return

    print(f"\n{'='*60}")
    print(f"PULL REQUESTS: {data.total}")
    print(f"{'='*60}")

    for category in PRCategory:
        items = data.bucket(category)
        print(f"\n{SECTION_TITLES[category]} ({len(items)})")
        print("-" * 40)

        if not items:
            print("  (none)")
            continue

        for pr in items:
            status = " ✓" if pr.status == "approved" else ""
            title = pr.title[:60] + "..." if len(pr.title) > 60 else pr.title
            print(f"  {pr.repo}#{pr.number} {title} ({pr.author}){status}")
            if verbose:
                print(f"      {pr.url}")

    print()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="prism",
        description="Prism - your open GitHub pull requests at a glance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s login              Sign in to GitHub with a device code
  %(prog)s pulls              Show your pull requests by status
  %(prog)s pulls --json       Same, as JSON
  %(prog)s serve              Start the web UI on http://127.0.0.1:8000
        """,
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (defaults to PRISM_LOG_LEVEL)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("login", help="Sign in to GitHub")
    subparsers.add_parser("status", help="Show whether a GitHub token is stored")

    pulls = subparsers.add_parser("pulls", help="List your open pull requests")
    pulls.add_argument("--json", action="store_true", help="Print JSON instead of text")

    open_cmd = subparsers.add_parser("open", help="Open a URL in the default browser")
    open_cmd.add_argument("url", nargs="?", default=None, help="URL (defaults to github.com/pulls)")

    serve = subparsers.add_parser("serve", help="Run the web UI")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def main(args: Optional[list[str]] = None) -> int:
    """
    Main CLI entry point.

    This function is structured to be testable: pass an explicit ``args`` list
    instead of relying on ``sys.argv``.

    Args:
        args: Command line arguments (uses sys.argv if None).

    Returns:
        int: Exit code (0 for success, 1 for error, 130 when interrupted).
    """
    parsed_args = _build_parser().parse_args(args)

    settings = get_settings()
    log_level = "DEBUG" if parsed_args.verbose else (parsed_args.log_level or settings.log_level)
    setup_logging(log_level)

    logger = logging.getLogger(__name__)

    if parsed_args.command == "serve":
        import uvicorn

        uvicorn.run("prism.webapp:app", host=parsed_args.host, port=parsed_args.port)
        return 0

    orchestrator = PrismOrchestrator(settings=settings)
    try:
        if parsed_args.command == "login":
            orchestrator.start_auth_flow(on_user_code=print_device_code)
            print("\n✅ Signed in to GitHub.\n")
            return 0

        if parsed_args.command == "status":
            if orchestrator.is_authenticated:
                print(f"Signed in (token stored in {orchestrator.token_store.path})")
                return 0
            print("Not signed in. Run 'prism login'.")
            return 1

        if parsed_args.command == "pulls":
            data = orchestrator.fetch_pull_requests()
            if parsed_args.json:
                print(json.dumps(data.model_dump(exclude_none=True), indent=2))
            else:
                print_pull_requests(data, verbose=parsed_args.verbose)
            return 0

        if parsed_args.command == "open":
            if parsed_args.url:
                orchestrator.open_external_url(parsed_args.url)
            else:
                orchestrator.open_github()
            return 0

        return 1

    except KeyboardInterrupt:
        orchestrator.cancel_auth_flow()
        print("\nCancelled.\n")
        return 130
    except PrismError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"\n❌ Error: {e}\n")
        return 1
    finally:
        orchestrator.shutdown()


if __name__ == "__main__":
    sys.exit(main())
