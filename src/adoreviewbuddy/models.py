"""Pydantic models for adoreviewbuddy.

Two groups live here: the raw Azure DevOps payload shapes (validated at the
parse boundary, camelCase on the wire) and the records this package hands
to agents (ingestion output, posting input and posting results).
"""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ThreadStatus(StrEnum):
    """Status of a pull request discussion thread as returned by the REST API."""

    UNKNOWN = "unknown"
    ACTIVE = "active"
    FIXED = "fixed"
    WONT_FIX = "wontFix"
    CLOSED = "closed"
    BY_DESIGN = "byDesign"
    PENDING = "pending"


class ThreadStatusCode(IntEnum):
    """Wire integers used for ``status`` when creating a thread."""

    ACTIVE = 1
    FIXED = 2
    WONT_FIX = 3
    CLOSED = 4
    BY_DESIGN = 5
    PENDING = 6


class CommentType(StrEnum):
    """Kind of comment: human text, system/bot generated, or a code change."""

    UNKNOWN = "unknown"
    TEXT = "text"
    SYSTEM = "system"
    CODE_CHANGE = "codeChange"


_STATUS_CODES: dict[ThreadStatus, ThreadStatusCode] = {
    ThreadStatus.ACTIVE: ThreadStatusCode.ACTIVE,
    ThreadStatus.FIXED: ThreadStatusCode.FIXED,
    ThreadStatus.WONT_FIX: ThreadStatusCode.WONT_FIX,
    ThreadStatus.CLOSED: ThreadStatusCode.CLOSED,
    ThreadStatus.BY_DESIGN: ThreadStatusCode.BY_DESIGN,
    ThreadStatus.PENDING: ThreadStatusCode.PENDING,
}
_CODE_STATUSES: dict[int, ThreadStatus] = {int(code): status for status, code in _STATUS_CODES.items()}

# Some API clients serialize commentType as its enum integer
_COMMENT_TYPE_CODES: dict[int, CommentType] = {
    0: CommentType.UNKNOWN,
    1: CommentType.TEXT,
    2: CommentType.CODE_CHANGE,
    3: CommentType.SYSTEM,
}


# ---------------------------------------------------------------------------
# Pull request reference
# ---------------------------------------------------------------------------


class PullRequestRef(BaseModel):
    """A resolved pull request location. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    organization_url: str = Field(description="Organization base URL, e.g. https://dev.azure.com/org")
    project: str = Field(min_length=1, description="Project name")
    repository: str = Field(min_length=1, description="Repository name or id")
    pull_request_id: int = Field(gt=0, description="Pull request number")

    @field_validator("organization_url")
    @classmethod
    def _check_organization_url(cls, value: str) -> str:
        if not value.startswith("https://") or value.endswith("/"):
            msg = f"organization_url must be an absolute https URL without trailing slash, got {value!r}"
            raise ValueError(msg)
        return value

    @property
    def organization(self) -> str:
        """Organization name, independent of which hostname form was used."""
        host_and_path = self.organization_url.removeprefix("https://")
        host, _, path = host_and_path.partition("/")
        if path:
            return path.split("/", 1)[0]
        return host.split(".", 1)[0]


# ---------------------------------------------------------------------------
# Raw REST API payloads
# ---------------------------------------------------------------------------


class _AdoPayload(BaseModel):
    """Base for REST payload models: ignore fields we don't use."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class AdoIdentity(_AdoPayload):
    display_name: str = Field(default="unknown", alias="displayName")
    unique_name: str = Field(default="", alias="uniqueName")


class FilePosition(_AdoPayload):
    line: int
    offset: int = 1


class ThreadContext(_AdoPayload):
    file_path: str | None = Field(default=None, alias="filePath")
    right_file_start: FilePosition | None = Field(default=None, alias="rightFileStart")
    right_file_end: FilePosition | None = Field(default=None, alias="rightFileEnd")
    left_file_start: FilePosition | None = Field(default=None, alias="leftFileStart")
    left_file_end: FilePosition | None = Field(default=None, alias="leftFileEnd")


class AdoComment(_AdoPayload):
    id: int
    parent_comment_id: int = Field(default=0, alias="parentCommentId")
    author: AdoIdentity = Field(default_factory=AdoIdentity)
    content: str = ""
    comment_type: CommentType = Field(default=CommentType.UNKNOWN, alias="commentType")
    is_deleted: bool = Field(default=False, alias="isDeleted")

    @field_validator("content", mode="before")
    @classmethod
    def _none_content_is_empty(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("comment_type", mode="before")
    @classmethod
    def _comment_type_from_code(cls, value: object) -> object:
        if value is None:
            return CommentType.UNKNOWN
        if isinstance(value, int):
            return _COMMENT_TYPE_CODES.get(value, CommentType.UNKNOWN)
        return value


class AdoThread(_AdoPayload):
    id: int
    status: ThreadStatus = ThreadStatus.UNKNOWN
    comments: list[AdoComment] = Field(default_factory=list)
    thread_context: ThreadContext | None = Field(default=None, alias="threadContext")

    @field_validator("status", mode="before")
    @classmethod
    def _status_from_wire(cls, value: object) -> object:
        if value is None:
            return ThreadStatus.UNKNOWN
        if isinstance(value, int):
            return _CODE_STATUSES.get(value, ThreadStatus.UNKNOWN)
        return value


class AdoPullRequest(_AdoPayload):
    pull_request_id: int = Field(alias="pullRequestId")
    title: str = ""
    status: str = ""
    created_by: AdoIdentity = Field(default_factory=AdoIdentity, alias="createdBy")
    source_ref_name: str = Field(default="", alias="sourceRefName")
    target_ref_name: str = Field(default="", alias="targetRefName")


# ---------------------------------------------------------------------------
# Ingestion output
# ---------------------------------------------------------------------------


class Reply(BaseModel):
    """A non-system comment that follows the root comment of a thread."""

    model_config = ConfigDict(frozen=True)

    author: str = Field(description="Display name of the reply author")
    content: str = Field(description="Plain-text reply content")


class NormalizedThreadRecord(BaseModel):
    """One active review thread, flattened for an agent to read and reference by index."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=1, description="1-based position in this fetch; use it to address the comment")
    thread_id: int = Field(description="Thread id on the pull request")
    comment_id: int = Field(description="Id of the root comment")
    author: str = Field(description="Display name of the root comment author")
    plain_content: str = Field(description="Root comment text with bot decoration stripped")
    full_content: str = Field(description="Root comment content exactly as returned by the API")
    summary: str = Field(description="Single-line summary, at most 100 characters plus ellipsis")
    reply_count: int = Field(default=0, description="Number of non-system replies")
    replies: list[Reply] = Field(default_factory=list, description="Non-system replies in thread order")
    file_path: str | None = Field(default=None, description="File the thread is anchored to")
    line_number: int | None = Field(default=None, description="Right-side line, falling back to left-side line")
    url: str = Field(default="", description="Browser link to the thread")
    severity: str | None = Field(default=None, description="Severity label found in the comment, if any")
    category: str | None = Field(default=None, description="Category label found in the comment, if any")
    comment_type: CommentType = Field(default=CommentType.TEXT, description="Type of the root comment")


class PullRequestInfo(BaseModel):
    """Pull request metadata included alongside the fetched threads."""

    pull_request_id: int = Field(description="Pull request number")
    title: str = Field(default="", description="Pull request title")
    status: str = Field(default="", description="Pull request status (active, completed, abandoned)")
    url: str = Field(default="", description="Browser link to the pull request")
    source_branch: str = Field(default="", description="Source ref name")
    target_branch: str = Field(default="", description="Target ref name")
    author: str = Field(default="", description="Display name of the pull request creator")


class ThreadFetchResult(BaseModel):
    """Active review threads for a pull request, indexed for later selection."""

    pull_request: PullRequestInfo | None = Field(default=None, description="Pull request metadata")
    threads: list[NormalizedThreadRecord] = Field(default_factory=list, description="Active threads, indexed from 1")
    total_threads: int = Field(default=0, description="Number of threads returned by the API before filtering")
    active_threads: int = Field(default=0, description="Number of threads kept after filtering")
    message: str = Field(default="", description="Human-readable status line")
    error: str | None = Field(default=None, description="Error message if the request failed")


# ---------------------------------------------------------------------------
# Posting input and results
# ---------------------------------------------------------------------------


class OutboundComment(BaseModel):
    """A review comment to post as a new thread anchored to a file line."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    file_path: str = Field(
        min_length=1,
        validation_alias=AliasChoices("file_path", "filePath"),
        description="Repository-root-relative path with a leading '/'",
    )
    line: int = Field(ge=1, description="1-based line in the new version of the file")
    content: str = Field(min_length=1, description="Markdown comment body")
    status: ThreadStatus = Field(default=ThreadStatus.ACTIVE, description="Initial thread status")

    @field_validator("file_path")
    @classmethod
    def _leading_slash(cls, value: str) -> str:
        value = value.strip().replace("\\", "/")
        return value if value.startswith("/") else f"/{value}"

    @field_validator("content")
    @classmethod
    def _non_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "content must not be blank"
            raise ValueError(msg)
        return value

    @field_validator("status", mode="before")
    @classmethod
    def _status_from_code(cls, value: object) -> object:
        if value is None:
            return ThreadStatus.ACTIVE
        if isinstance(value, int) and not isinstance(value, bool):
            return _CODE_STATUSES.get(value, value)
        if isinstance(value, str):
            for status in ThreadStatus:
                if status.value.lower() == value.strip().lower():
                    return status
        return value

    @field_validator("status")
    @classmethod
    def _postable_status(cls, value: ThreadStatus) -> ThreadStatus:
        if value not in _STATUS_CODES:
            msg = f"status {value!r} cannot be used for a new thread"
            raise ValueError(msg)
        return value

    @property
    def status_code(self) -> int:
        return int(_STATUS_CODES[self.status])


class PostOutcome(BaseModel):
    """Outcome of posting one selected comment: a thread id or an error."""

    index: int = Field(description="1-based index of the comment in the input")
    file_path: str = Field(description="File the comment targeted")
    line: int = Field(description="Line the comment targeted")
    success: bool = Field(description="Whether the thread was created")
    thread_id: int | None = Field(default=None, description="Id of the created thread")
    error: str | None = Field(default=None, description="Error message if posting failed")


class PostResult(BaseModel):
    """Aggregate result of a posting run."""

    attempted: int = Field(default=0, description="Number of comments a POST was attempted for")
    posted: int = Field(default=0, description="Number of threads created")
    failed: int = Field(default=0, description="Number of comments that failed to post")
    skipped_indices: list[int] = Field(default_factory=list, description="Requested indices that were out of range")
    outcomes: list[PostOutcome] = Field(default_factory=list, description="Per-item outcomes in posting order")
    error: str | None = Field(default=None, description="Error message if the whole run failed")

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> Literal["noop", "success", "partial_failure", "failure"]:
        if self.attempted == 0:
            return "noop"
        if self.failed == 0:
            return "success"
        if self.posted == 0:
            return "failure"
        return "partial_failure"

    @property
    def failures(self) -> list[PostOutcome]:
        return [o for o in self.outcomes if not o.success]


class ConfigInfo(BaseModel):
    """Active adoreviewbuddy configuration with metadata."""

    config: dict = Field(description="Full configuration as a dictionary")
    source: str = Field(default="defaults", description="Path of the config file, or 'defaults'")
