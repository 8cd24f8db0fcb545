"""Tests for payload and record models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from adoreviewbuddy.models import (
    AdoComment,
    AdoThread,
    CommentType,
    OutboundComment,
    PostOutcome,
    PostResult,
    PullRequestRef,
    ThreadStatus,
)


class TestAdoThread:
    def test_parses_camel_case_payload(self):
        thread = AdoThread.model_validate({
            "id": 5,
            "status": "active",
            "comments": [{"id": 1, "content": "hi", "commentType": "text", "author": {"displayName": "Ann"}}],
            "threadContext": {"filePath": "/a.py", "rightFileStart": {"line": 3, "offset": 1}},
            "publishedDate": "2024-01-01T00:00:00Z",
        })
        assert thread.status == ThreadStatus.ACTIVE
        assert thread.comments[0].author.display_name == "Ann"
        assert thread.thread_context is not None
        assert thread.thread_context.right_file_start is not None
        assert thread.thread_context.right_file_start.line == 3

    def test_missing_status_is_unknown(self):
        assert AdoThread.model_validate({"id": 1, "status": None}).status == ThreadStatus.UNKNOWN
        assert AdoThread.model_validate({"id": 1}).status == ThreadStatus.UNKNOWN

    def test_integer_status(self):
        assert AdoThread.model_validate({"id": 1, "status": 2}).status == ThreadStatus.FIXED
        assert AdoThread.model_validate({"id": 1, "status": 99}).status == ThreadStatus.UNKNOWN


class TestAdoComment:
    def test_null_content_becomes_empty(self):
        assert AdoComment.model_validate({"id": 1, "content": None}).content == ""

    @pytest.mark.parametrize(
        ("wire", "expected"),
        [
            ("text", CommentType.TEXT),
            ("system", CommentType.SYSTEM),
            ("codeChange", CommentType.CODE_CHANGE),
            (1, CommentType.TEXT),
            (3, CommentType.SYSTEM),
            (None, CommentType.UNKNOWN),
        ],
    )
    def test_comment_type(self, wire, expected):
        assert AdoComment.model_validate({"id": 1, "commentType": wire}).comment_type == expected

    def test_author_defaults(self):
        assert AdoComment.model_validate({"id": 1}).author.display_name == "unknown"


class TestPullRequestRef:
    def test_rejects_trailing_slash(self):
        with pytest.raises(ValidationError):
            PullRequestRef(organization_url="https://dev.azure.com/org1/", project="p", repository="r", pull_request_id=1)

    def test_rejects_non_positive_id(self):
        with pytest.raises(ValidationError):
            PullRequestRef(organization_url="https://dev.azure.com/org1", project="p", repository="r", pull_request_id=0)

    @pytest.mark.parametrize("org_url", ["https://dev.azure.com/contoso", "https://contoso.visualstudio.com"])
    def test_organization_name(self, org_url):
        ref = PullRequestRef(organization_url=org_url, project="p", repository="r", pull_request_id=1)
        assert ref.organization == "contoso"


class TestOutboundComment:
    def test_accepts_camel_case_file_path(self):
        comment = OutboundComment.model_validate({"filePath": "/src/a.py", "line": 3, "content": "x"})
        assert comment.file_path == "/src/a.py"
        assert comment.status == ThreadStatus.ACTIVE
        assert comment.status_code == 1

    def test_adds_leading_slash(self):
        comment = OutboundComment(file_path="src/a.py", line=1, content="x")
        assert comment.file_path == "/src/a.py"

    def test_normalizes_backslashes(self):
        comment = OutboundComment(file_path="src\\pkg\\a.py", line=1, content="x")
        assert comment.file_path == "/src/pkg/a.py"

    @pytest.mark.parametrize(
        ("status", "code"),
        [("active", 1), ("Fixed", 2), ("wontfix", 3), ("closed", 4), ("byDesign", 5), ("PENDING", 6), (4, 4), (None, 1)],
    )
    def test_status_names_and_codes(self, status, code):
        comment = OutboundComment.model_validate({"file_path": "/a", "line": 1, "content": "x", "status": status})
        assert comment.status_code == code

    @pytest.mark.parametrize("status", ["unknown", "resolved", 0, 7])
    def test_rejects_unpostable_status(self, status):
        with pytest.raises(ValidationError):
            OutboundComment.model_validate({"file_path": "/a", "line": 1, "content": "x", "status": status})

    @pytest.mark.parametrize(
        "data",
        [
            {"file_path": "/a", "line": 0, "content": "x"},
            {"file_path": "/a", "line": 1, "content": ""},
            {"file_path": "/a", "line": 1, "content": "   \n"},
            {"file_path": "", "line": 1, "content": "x"},
            {"line": 1, "content": "x"},
        ],
    )
    def test_rejects_invalid(self, data):
        with pytest.raises(ValidationError):
            OutboundComment.model_validate(data)


class TestPostResult:
    def _outcome(self, success: bool) -> PostOutcome:
        return PostOutcome(index=1, file_path="/a", line=1, success=success, error=None if success else "boom")

    def test_noop(self):
        assert PostResult().status == "noop"

    def test_success(self):
        result = PostResult(attempted=1, posted=1, outcomes=[self._outcome(True)])
        assert result.status == "success"
        assert result.failures == []

    def test_partial_failure(self):
        result = PostResult(attempted=2, posted=1, failed=1, outcomes=[self._outcome(True), self._outcome(False)])
        assert result.status == "partial_failure"
        assert len(result.failures) == 1

    def test_failure(self):
        assert PostResult(attempted=1, failed=1).status == "failure"

    def test_status_is_serialized(self):
        assert PostResult().model_dump()["status"] == "noop"
