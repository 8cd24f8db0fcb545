"""FastMCP server for adoreviewbuddy.

Exposes tools for reading active review threads on Azure DevOps pull
requests and posting curated review comments back as new threads.
"""

from __future__ import annotations

import asyncio
import logging

from fastmcp import FastMCP
from fastmcp.server.middleware.error_handling import ErrorHandlingMiddleware
from fastmcp.server.middleware.logging import LoggingMiddleware
from fastmcp.server.middleware.ping import PingMiddleware
from fastmcp.server.middleware.timing import TimingMiddleware

from adoreviewbuddy.ado_api import AdoAuthError, AdoTransportError, InvalidInputError
from adoreviewbuddy.config import get_config, get_config_path
from adoreviewbuddy.models import ConfigInfo, OutboundComment, PostResult, ThreadFetchResult
from adoreviewbuddy.pr_url import ACCEPTED_FORMATS
from adoreviewbuddy.tools import post, threads

logger = logging.getLogger(__name__)

_HTTP_NOT_FOUND = 404
_HTTP_FORBIDDEN = 403

mcp = FastMCP(
    "adoreviewbuddy",
    instructions="""\
Azure DevOps review buddy — read active PR review threads and post review comments.

## Addressing review comments

1. `fetch_review_threads(pr_url)` returns the active threads, each with an `index`
   starting at 1. Present them to the user as a numbered list using `index`,
   `file_path:line_number`, `author` and `summary`. `plain_content` has bot
   decoration stripped; `full_content` is the raw body.
2. When the user says "address comment #N", use the record with `index == N`
   from the same fetch. Indices are only stable within one fetch.
3. An empty `threads` list is not an error — there is nothing to address.

## Posting review feedback

1. Draft comments as `{file_path, line, content, status?}` objects. `file_path` is
   repository-root-relative with a leading `/`; `line` is 1-based in the new file.
2. Show the numbered draft list to the user and ask which to post.
3. Call `post_review_comments(pr_url, comments, indices="1,3")` with the chosen
   indices (omit `indices` to post all).
4. Report `posted`/`failed`. Failed items list file, line and error — retry only
   those, by index. **Never re-post a run that succeeded**: there is no dedup, so
   posting the same comments again creates duplicate threads.
""",
)


def _recovery_error(
    exc: Exception,
    *,
    tool_name: str,
    pr_url: str | None = None,
) -> str:
    """Build an actionable error message with recovery hints.

    Classifies errors so agents can self-correct instead of retrying blindly.
    """
    msg = str(exc)

    if isinstance(exc, InvalidInputError):
        formats = " or ".join(ACCEPTED_FORMATS)
        return f"{tool_name} failed: invalid input — {msg}. Pull request URLs look like {formats}."

    # Auth errors need a human; retrying cannot help
    if isinstance(exc, AdoAuthError):
        return f"{tool_name} failed: not authenticated to Azure DevOps. Ask the user to run 'az login'. Do not retry until they have."

    if isinstance(exc, AdoTransportError):
        if exc.status_code == _HTTP_FORBIDDEN or "rate limit" in msg.lower():
            return f"{tool_name} failed: Azure DevOps rate limit hit. Wait 60 seconds and retry."
        if exc.status_code == _HTTP_NOT_FOUND:
            return f"{tool_name} failed: resource not found — {msg}. Verify the pull request URL {pr_url!r} is correct."
        return f"{tool_name} failed: {msg}. This may be a transient issue; retry once."

    return f"{tool_name} failed: {msg}."


mcp.add_middleware(ErrorHandlingMiddleware(include_traceback=True, transform_errors=True))
mcp.add_middleware(TimingMiddleware())
mcp.add_middleware(LoggingMiddleware(include_payloads=True, max_payload_length=500))
mcp.add_middleware(PingMiddleware(interval_ms=30_000))


@mcp.tool(tags={"query"})
async def fetch_review_threads(pr_url: str) -> ThreadFetchResult:
    """List the active review threads of a pull request as numbered records.

    Args:
        pr_url: Pull request URL, e.g. https://dev.azure.com/org/project/_git/repo/pullrequest/42.

    Returns:
        Pull request metadata and active threads indexed from 1.
    """
    try:
        return await asyncio.to_thread(threads.fetch_review_threads, pr_url)
    except Exception as exc:
        logger.exception("fetch_review_threads failed for %s", pr_url)
        return ThreadFetchResult(error=_recovery_error(exc, tool_name="fetch_review_threads", pr_url=pr_url))


@mcp.tool(tags={"command"})
async def post_review_comments(
    pr_url: str,
    comments: list[OutboundComment],
    indices: str | None = None,
) -> PostResult:
    """Post review comments to a pull request, one new thread per comment.

    Comments are posted one at a time; a failure is reported per item and
    does not stop the rest, except an auth failure, which stops the run and
    returns the outcomes so far with ``error`` set. Posting the same comments
    twice creates duplicate threads.

    Args:
        pr_url: Pull request URL, e.g. https://dev.azure.com/org/project/_git/repo/pullrequest/42.
        comments: Comments with file_path (leading '/'), 1-based line, markdown content and optional status.
        indices: Comma-separated 1-based indices of the comments to post (e.g. "1,3"). Posts all if omitted.

    Returns:
        Attempted/posted/failed counts with per-item outcomes.
    """
    try:
        return await asyncio.to_thread(post.post_review_comments, pr_url, comments, indices)
    except Exception as exc:
        logger.exception("post_review_comments failed for %s", pr_url)
        error = _recovery_error(exc, tool_name="post_review_comments", pr_url=pr_url)
        partial = getattr(exc, "partial_result", None)
        if partial is not None:
            return partial.model_copy(update={"error": error})
        return PostResult(error=error)


@mcp.tool(tags={"discovery"})
def show_config() -> ConfigInfo:
    """Show the active adoreviewbuddy configuration and where it was loaded from."""
    config = get_config()
    path = get_config_path()
    return ConfigInfo(
        config=config.model_dump(mode="json"),
        source=str(path) if path else "defaults",
    )


@mcp.prompt
def address_review_comments() -> str:
    """Workflow for working through the active review threads of a pull request."""
    return """\
You are addressing review feedback on an Azure DevOps pull request. Follow these steps:

1. **Fetch** — call `fetch_review_threads(pr_url)`. If `threads` is empty, tell the user
   there is nothing to address and stop.
2. **Present** — list each thread as `#index file:line (author) — summary`.
3. **Ask** — let the user pick which numbers to address.
4. **Fix** — for each chosen thread, read `plain_content`, open `file_path` at
   `line_number`, and implement the change.
5. **Report** — summarize what changed per thread number.
"""
