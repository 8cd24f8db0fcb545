"""Post a curated batch of review comments to a pull request, one new thread each."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from adoreviewbuddy.ado_api import AdoAuthError, AdoClient, AdoTransportError, InvalidInputError, threads_url
from adoreviewbuddy.models import OutboundComment, PostOutcome, PostResult
from adoreviewbuddy.pr_url import parse_pr_url

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

_TEXT_COMMENT_TYPE = 1  # commentType wire value for CommentType.TEXT


# -- Input ---------------------------------------------------------------------


def parse_indices(selection: str | Iterable[int] | None) -> list[int] | None:
    """Parse a comma-separated 1-based index list such as ``"2,4"``.

    Blank tokens are ignored and duplicates are dropped (first occurrence
    wins). ``None`` or an empty selection means "no selection".

    Raises:
        InvalidInputError: If a token is not an integer.
    """
    if selection is None:
        return None

    if isinstance(selection, str):
        values: list[int] = []
        for token in selection.split(","):
            token = token.strip()  # noqa: PLW2901
            if not token:
                continue
            try:
                values.append(int(token))
            except ValueError:
                msg = f"Invalid index {token!r} in selection {selection!r}. Expected comma-separated numbers like '1,3'."
                raise InvalidInputError(msg) from None
    else:
        values = list(selection)

    if not values:
        return None

    unique: list[int] = []
    for value in values:
        if value in unique:
            logger.warning("Index %d selected more than once; posting it once", value)
            continue
        unique.append(value)
    return unique


def select_comments(
    comments: Sequence[OutboundComment],
    indices: Sequence[int] | None,
) -> tuple[list[tuple[int, OutboundComment]], list[int]]:
    """Pick the comments to post, in selection order.

    Returns:
        (selected, skipped) — ``(index, comment)`` pairs to post, and the
        requested indices that were out of range.
    """
    if indices is None:
        return list(enumerate(comments, start=1)), []

    selected: list[tuple[int, OutboundComment]] = []
    skipped: list[int] = []
    for index in indices:
        if 1 <= index <= len(comments):
            selected.append((index, comments[index - 1]))
        else:
            logger.warning("Skipping index %d: out of range (1-%d)", index, len(comments))
            skipped.append(index)
    return selected, skipped


def parse_outbound_comments(data: Any) -> list[OutboundComment]:
    """Validate a list of comment objects (or ``{"comments": [...]}``).

    Raises:
        InvalidInputError: If the shape is wrong or an item fails validation.
    """
    if isinstance(data, dict) and "comments" in data:
        data = data["comments"]
    if not isinstance(data, list):
        msg = "Comments input must be a JSON array of {filePath, line, content, status?} objects."
        raise InvalidInputError(msg)

    comments: list[OutboundComment] = []
    for i, item in enumerate(data, start=1):
        if isinstance(item, OutboundComment):
            comments.append(item)
            continue
        try:
            comments.append(OutboundComment.model_validate(item))
        except ValidationError as exc:
            msg = f"Invalid comment #{i}: {exc}"
            raise InvalidInputError(msg) from exc
    return comments


def load_outbound_comments(path: str | Path) -> list[OutboundComment]:
    """Read and validate outbound comments from a JSON file.

    Raises:
        InvalidInputError: If the file is missing, not JSON, or invalid.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read comments file {path}: {exc}"
        raise InvalidInputError(msg) from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = f"Comments file {path} is not valid JSON: {exc}"
        raise InvalidInputError(msg) from exc
    return parse_outbound_comments(data)


# -- Posting -------------------------------------------------------------------


def build_thread_payload(comment: OutboundComment) -> dict[str, Any]:
    """Request body creating one thread anchored at the start of ``comment.line``."""
    return {
        "comments": [
            {
                "parentCommentId": 0,
                "content": comment.content,
                "commentType": _TEXT_COMMENT_TYPE,
            }
        ],
        "status": comment.status_code,
        "threadContext": {
            "filePath": comment.file_path,
            "rightFileStart": {"line": comment.line, "offset": 1},
            "rightFileEnd": {"line": comment.line, "offset": 2},
        },
    }


def _post_one(client: AdoClient, url: str, index: int, comment: OutboundComment) -> PostOutcome:
    """Post a single comment. Transport failures become a failed outcome."""
    try:
        response = client.post_json(url, build_thread_payload(comment))
    except AdoTransportError as exc:
        logger.warning("Failed to post comment #%d at %s:%d: %s", index, comment.file_path, comment.line, exc)
        return PostOutcome(index=index, file_path=comment.file_path, line=comment.line, success=False, error=str(exc))

    thread_id = response.get("id") if isinstance(response, dict) else None
    logger.info("Posted comment #%d as thread %s at %s:%d", index, thread_id, comment.file_path, comment.line)
    return PostOutcome(index=index, file_path=comment.file_path, line=comment.line, success=True, thread_id=thread_id)


def _aggregate(outcomes: list[PostOutcome], skipped: list[int]) -> PostResult:
    posted = sum(1 for o in outcomes if o.success)
    return PostResult(
        attempted=len(outcomes),
        posted=posted,
        failed=len(outcomes) - posted,
        skipped_indices=skipped,
        outcomes=outcomes,
    )


def post_review_comments(
    pr_url: str,
    comments: Sequence[OutboundComment | dict[str, Any]],
    indices: str | Iterable[int] | None = None,
    client: AdoClient | None = None,
) -> PostResult:
    """Create one new thread per selected comment, sequentially and best-effort.

    Each selected comment is attempted exactly once. A failed POST is recorded
    and the loop moves on; existing threads are never modified. Posting the
    same input twice creates the threads twice.

    An auth failure stops the run: the remaining comments would be rejected
    the same way. The error carries the outcomes so far in
    ``partial_result``, so threads already created are still reported.

    Args:
        pr_url: Pull request URL in either accepted hostname form.
        comments: Comments to post (models or raw dicts).
        indices: Optional 1-based selection, as ``"2,4"`` or a list of ints.
        client: API client to use. A default client is built if omitted.

    Returns:
        PostResult with attempted/posted/failed counts and per-item outcomes.

    Raises:
        InvalidInputError: If the URL, selection, or comments are malformed.
        AdoAuthError: If no usable token is available or it is rejected.
    """
    ref = parse_pr_url(pr_url)
    outbound = parse_outbound_comments(list(comments))
    selection = parse_indices(indices)
    selected, skipped = select_comments(outbound, selection)

    if not selected:
        logger.info("No comments selected; nothing to post")
        return PostResult(skipped_indices=skipped)

    client = client or AdoClient()
    url = threads_url(ref)
    outcomes: list[PostOutcome] = []
    for index, comment in selected:
        try:
            outcomes.append(_post_one(client, url, index, comment))
        except AdoAuthError as exc:
            outcomes.append(
                PostOutcome(index=index, file_path=comment.file_path, line=comment.line, success=False, error=str(exc))
            )
            exc.partial_result = _aggregate(outcomes, skipped)
            logger.error(  # noqa: TRY400
                "Stopped at comment #%d of PR #%d: not authorized (%d posted before)",
                index,
                ref.pull_request_id,
                exc.partial_result.posted,
            )
            raise

    result = _aggregate(outcomes, skipped)
    logger.info(
        "Posted %d of %d comment(s) to PR #%d (%d failed)",
        result.posted,
        result.attempted,
        ref.pull_request_id,
        result.failed,
    )
    return result
