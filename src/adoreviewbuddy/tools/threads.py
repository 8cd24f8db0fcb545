"""Fetch active review threads for a pull request and normalize them for agents."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from adoreviewbuddy.ado_api import AdoClient, AdoTransportError, pull_request_url, threads_url, web_url
from adoreviewbuddy.models import (
    AdoPullRequest,
    AdoThread,
    CommentType,
    NormalizedThreadRecord,
    PullRequestInfo,
    Reply,
    ThreadFetchResult,
    ThreadStatus,
)
from adoreviewbuddy.pr_url import parse_pr_url

if TYPE_CHECKING:
    from adoreviewbuddy.models import PullRequestRef, ThreadContext

logger = logging.getLogger(__name__)

SUMMARY_LENGTH = 100
_ELLIPSIS = "..."

# -- Bot comment content extraction ---------------------------------------------

# Leading non-blank caption lines up to a closing marker line (thematic break,
# </sub> or the end of an HTML comment), followed by a blank line. A blank line
# before the marker means the body opens with prose, not a caption.
_CAPTION_BLOCK_RE = re.compile(
    r"\A(?:[^\n]*\S[^\n]*\n)*?[ \t]*(?:-{3,}|\*{3,}|_{3,}|[^\n]*</sub>|[^\n]*-->)[ \t]*\n[ \t]*\n",
)

# Where the prose ends: a suggested-code heading, an HTML table, or a code fence.
_CONTENT_END_RE = re.compile(
    r"^[ \t]*(?:(?:\*\*|#+[ \t]*)?(?:suggested[ \t]+(?:code|change|fix)|suggestion:)|<table\b|```)",
    re.IGNORECASE | re.MULTILINE,
)

_LINE_BREAKS_RE = re.compile(r"[\r\n]+")


def extract_plain_content(raw: str, comment_type: CommentType = CommentType.SYSTEM) -> str:
    """Return the human-readable part of a comment body.

    System comments posted by review bots wrap their finding in a caption
    block and often follow it with a suggested-code block or table. The text
    between the two is returned. Anything else, including bodies that don't
    follow that layout, is returned unchanged.
    """
    if comment_type != CommentType.SYSTEM:
        return raw

    text = raw.replace("\r\n", "\n")
    caption = _CAPTION_BLOCK_RE.match(text)
    if not caption:
        return raw

    body = text[caption.end() :]
    end = _CONTENT_END_RE.search(body)
    if end:
        body = body[: end.start()]
    body = body.strip()
    return body or raw


def summarize(text: str, limit: int = SUMMARY_LENGTH) -> str:
    """Collapse *text* to one line and truncate it at a word boundary.

    The cut happens at the last space before *limit* when that space lies in
    the second half of the allowed length; otherwise the text is hard-cut.
    """
    collapsed = _LINE_BREAKS_RE.sub(" ", text).strip()
    if len(collapsed) <= limit:
        return collapsed
    cut = collapsed.rfind(" ", 0, limit)
    if cut <= limit // 2:
        cut = limit
    return collapsed[:cut].rstrip() + _ELLIPSIS


# -- Severity / category labels -------------------------------------------------

_SEVERITY_LABEL_RE = re.compile(r"\bseverity\b\s*\**\s*[:=]\s*\**\s*(?P<value>[A-Za-z]+)", re.IGNORECASE)
_CATEGORY_LABEL_RE = re.compile(r"\bcategory\b\s*\**\s*[:=]\s*\**\s*(?P<value>[A-Za-z][\w-]*)", re.IGNORECASE)

# Ordered most-critical-first so the first match wins.
_EMOJI_SEVERITY: list[tuple[str, str]] = [
    ("🔴", "critical"),
    ("🟠", "high"),
    ("🟡", "medium"),
    ("🔵", "low"),
    ("📝", "info"),
]


def classify_comment(raw: str) -> tuple[str | None, str | None]:
    """Pull ``(severity, category)`` out of a comment body, if it labels them."""
    severity: str | None = None
    match = _SEVERITY_LABEL_RE.search(raw)
    if match:
        severity = match["value"].lower()
    else:
        for emoji, level in _EMOJI_SEVERITY:
            if emoji in raw:
                severity = level
                break

    match = _CATEGORY_LABEL_RE.search(raw)
    category = match["value"].lower() if match else None
    return severity, category


# -- Normalization ----------------------------------------------------------------


def is_ingestible(thread: AdoThread) -> bool:
    """Active, non-empty threads that are either anchored to code or start with a text comment."""
    if thread.status != ThreadStatus.ACTIVE or not thread.comments:
        return False
    return thread.thread_context is not None or thread.comments[0].comment_type == CommentType.TEXT


def resolve_line(context: ThreadContext | None) -> int | None:
    """Right-side (new file) start line, falling back to the left side."""
    if context is None:
        return None
    if context.right_file_start is not None:
        return context.right_file_start.line
    if context.left_file_start is not None:
        return context.left_file_start.line
    return None


def _thread_to_record(thread: AdoThread, index: int, ref: PullRequestRef) -> NormalizedThreadRecord:
    root = thread.comments[0]
    plain = extract_plain_content(root.content, root.comment_type)
    severity, category = classify_comment(root.content)
    replies = [
        Reply(author=c.author.display_name, content=extract_plain_content(c.content, c.comment_type))
        for c in thread.comments[1:]
        if c.comment_type != CommentType.SYSTEM and not c.is_deleted
    ]
    context = thread.thread_context
    return NormalizedThreadRecord(
        index=index,
        thread_id=thread.id,
        comment_id=root.id,
        author=root.author.display_name,
        plain_content=plain,
        full_content=root.content,
        summary=summarize(plain),
        reply_count=len(replies),
        replies=replies,
        file_path=context.file_path if context else None,
        line_number=resolve_line(context),
        url=web_url(ref, thread.id),
        severity=severity,
        category=category,
        comment_type=root.comment_type,
    )


def normalize_threads(threads: list[AdoThread], ref: PullRequestRef) -> list[NormalizedThreadRecord]:
    """Filter to ingestible threads and index them from 1 in API order."""
    kept = [t for t in threads if is_ingestible(t)]
    logger.debug("Kept %d of %d threads", len(kept), len(threads))
    return [_thread_to_record(thread, i, ref) for i, thread in enumerate(kept, start=1)]


# -- Payload parsing ---------------------------------------------------------------


def parse_threads(payload: Any) -> list[AdoThread]:
    """Validate the ``value`` array of a threads response.

    Raises:
        AdoTransportError: If the payload doesn't have the expected shape.
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("value"), list):
        msg = "Unexpected threads response: missing 'value' array"
        raise AdoTransportError(msg)
    try:
        return [AdoThread.model_validate(item) for item in payload["value"]]
    except ValidationError as exc:
        msg = f"Unexpected thread payload: {exc}"
        raise AdoTransportError(msg) from exc


def parse_pull_request(payload: Any) -> AdoPullRequest:
    """Validate a pull request response.

    Raises:
        AdoTransportError: If the payload doesn't have the expected shape.
    """
    try:
        return AdoPullRequest.model_validate(payload)
    except ValidationError as exc:
        msg = f"Unexpected pull request payload: {exc}"
        raise AdoTransportError(msg) from exc


def _pull_request_info(pr: AdoPullRequest, ref: PullRequestRef) -> PullRequestInfo:
    return PullRequestInfo(
        pull_request_id=pr.pull_request_id,
        title=pr.title,
        status=pr.status,
        url=web_url(ref),
        source_branch=pr.source_ref_name,
        target_branch=pr.target_ref_name,
        author=pr.created_by.display_name,
    )


def fetch_review_threads(pr_url: str, client: AdoClient | None = None) -> ThreadFetchResult:
    """Fetch a pull request's active review threads as indexed records.

    Args:
        pr_url: Pull request URL in either accepted hostname form.
        client: API client to use. A default client is built if omitted.

    Returns:
        ThreadFetchResult with records indexed from 1. An empty ``threads``
        list means there is nothing to address.

    Raises:
        InvalidInputError: If the URL is malformed.
        AdoAuthError: If no usable token is available.
        AdoTransportError: If either read fails.
    """
    ref = parse_pr_url(pr_url)
    client = client or AdoClient()

    pr = parse_pull_request(client.get_json(pull_request_url(ref)))
    raw_threads = parse_threads(client.get_json(threads_url(ref)))
    records = normalize_threads(raw_threads, ref)

    if records:
        message = f"Found {len(records)} active thread(s) on PR #{ref.pull_request_id}."
    else:
        message = f"No active review threads on PR #{ref.pull_request_id}. Nothing to address."
    logger.info("%s (%d thread(s) total)", message, len(raw_threads))

    return ThreadFetchResult(
        pull_request=_pull_request_info(pr, ref),
        threads=records,
        total_threads=len(raw_threads),
        active_threads=len(records),
        message=message,
    )
