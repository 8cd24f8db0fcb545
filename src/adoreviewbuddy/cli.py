"""Command-line interface for adoreviewbuddy, built on cyclopts.

``fetch`` and ``post`` print JSON on stdout; logs go to stderr so the output
can be piped straight into a file or another tool.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, NoReturn

import cyclopts

from adoreviewbuddy.ado_api import AdoError

if TYPE_CHECKING:
    from adoreviewbuddy.models import PostResult

app = cyclopts.App(
    name="adoreviewbuddy",
    help="adoreviewbuddy — fetch and post Azure DevOps pull request review threads.",
)

logger = logging.getLogger(__name__)

_MASK_MIN_LENGTH = 8


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _fail(exc: Exception) -> NoReturn:
    print(f"Error: {exc}", file=sys.stderr)
    sys.exit(1)


def _print_post_result(result: PostResult) -> None:
    print(result.model_dump_json(indent=2))
    for failure in result.failures:
        print(f"  ✗ #{failure.index} {failure.file_path}:{failure.line}: {failure.error}", file=sys.stderr)


def _mask_token(token: str) -> str:
    if len(token) > _MASK_MIN_LENGTH:
        return token[:4] + "*" * 8 + token[-4:]
    return "****"


@app.default
def serve() -> None:
    """Run the adoreviewbuddy MCP server (default command)."""
    from adoreviewbuddy.server import mcp  # noqa: PLC0415

    mcp.run()


@app.command
def fetch(
    pr_url: str,
    *,
    output: Annotated[Path | None, cyclopts.Parameter(name=["--output", "-o"])] = None,
    verbose: Annotated[bool, cyclopts.Parameter(name=["--verbose", "-v"])] = False,
) -> None:
    """Fetch active review threads of a pull request as indexed JSON records.

    Args:
        pr_url: Pull request URL (dev.azure.com or visualstudio.com form).
        output: Write the JSON to this file instead of stdout.
        verbose: Enable debug logging on stderr.
    """
    from adoreviewbuddy.tools.threads import fetch_review_threads  # noqa: PLC0415

    _configure_logging(verbose)
    try:
        result = fetch_review_threads(pr_url)
    except (AdoError, ValueError) as exc:
        _fail(exc)

    payload = result.model_dump_json(indent=2)
    if output is not None:
        try:
            output.write_text(payload + "\n", encoding="utf-8")
        except OSError as exc:
            _fail(exc)
        logger.info("Wrote %d thread(s) to %s", len(result.threads), output)
    else:
        print(payload)


@app.command
def post(
    pr_url: str,
    comments_file: Path,
    *,
    indices: Annotated[str | None, cyclopts.Parameter(name=["--indices", "-i"])] = None,
    verbose: Annotated[bool, cyclopts.Parameter(name=["--verbose", "-v"])] = False,
) -> None:
    """Post review comments from a JSON file, one new thread per comment.

    Exits 0 even when some comments fail to post; check ``failed`` and
    ``outcomes`` in the printed result. An auth failure stops the run and
    exits 1 after printing the outcomes of the comments already attempted.

    Args:
        pr_url: Pull request URL (dev.azure.com or visualstudio.com form).
        comments_file: JSON array of {filePath, line, content, status?} objects.
        indices: Comma-separated 1-based indices to post (e.g. "1,3"). Posts all if omitted.
        verbose: Enable debug logging on stderr.
    """
    from adoreviewbuddy.tools.post import load_outbound_comments, post_review_comments  # noqa: PLC0415

    _configure_logging(verbose)
    try:
        comments = load_outbound_comments(comments_file)
        result = post_review_comments(pr_url, comments, indices=indices)
    except (AdoError, ValueError) as exc:
        # Threads created before an auth failure must still be reported
        partial = getattr(exc, "partial_result", None)
        if partial is not None:
            _print_post_result(partial)
        _fail(exc)

    _print_post_result(result)


@app.command(name="check-auth")
def check_auth() -> None:
    """Verify that a bearer token for Azure DevOps can be acquired."""
    from adoreviewbuddy.ado_api import AdoClient  # noqa: PLC0415
    from adoreviewbuddy.config import get_config, get_config_path  # noqa: PLC0415

    print("adoreviewbuddy check-auth")
    print("=" * 40)

    try:
        config = get_config()
    except ValueError as exc:
        print(f"❌ Configuration error: {exc}")
        sys.exit(1)

    source = get_config_path() or "defaults"
    print(f"\n  Config: {source}")
    print(f"  Token env vars: {', '.join(config.auth.token_env_vars) or 'none'}")
    print(f"  Azure CLI fallback: {'enabled' if config.auth.use_azure_cli else 'disabled'}")

    try:
        token = AdoClient().get_token()
    except AdoError as exc:
        print(f"\n  ❌ {exc}")
        sys.exit(1)
    print(f"\n  ✅ Token acquired: {_mask_token(token)}")
    print()
