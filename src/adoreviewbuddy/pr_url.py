"""Pull request URL parsing.

Azure DevOps addresses the same organization under two hostnames, so both
``dev.azure.com/{org}`` and ``{org}.visualstudio.com`` links are accepted.
"""

from __future__ import annotations

import re
from urllib.parse import unquote

from adoreviewbuddy.ado_api import InvalidInputError
from adoreviewbuddy.models import PullRequestRef

ACCEPTED_FORMATS = (
    "https://dev.azure.com/{org}/{project}/_git/{repo}/pullrequest/{id}",
    "https://{org}.visualstudio.com/{project}/_git/{repo}/pullrequest/{id}",
)

_DEV_AZURE_RE = re.compile(
    r"^https://dev\.azure\.com/(?P<org>[^/]+)/(?P<project>[^/]+)/_git/(?P<repo>[^/]+)/pullrequest/(?P<id>\d+)/?$",
    re.IGNORECASE,
)
_VISUALSTUDIO_RE = re.compile(
    r"^https://(?P<org>[^./]+)\.visualstudio\.com/(?P<project>[^/]+)/_git/(?P<repo>[^/]+)/pullrequest/(?P<id>\d+)/?$",
    re.IGNORECASE,
)


def _invalid(url: str) -> InvalidInputError:
    formats = "\n".join(f"  {fmt}" for fmt in ACCEPTED_FORMATS)
    return InvalidInputError(f"Invalid pull request URL {url!r}. Expected one of:\n{formats}")


def parse_pr_url(url: str) -> PullRequestRef:
    """Parse a pull request URL into a :class:`PullRequestRef`.

    Any query string or fragment is ignored. A trailing ``.git`` on the
    repository name is dropped. The organization is lowercased, since
    organization names and hostnames are case-insensitive.

    Raises:
        InvalidInputError: If the URL matches neither accepted format.
    """
    cleaned = url.strip().split("#", 1)[0].split("?", 1)[0]

    match = _DEV_AZURE_RE.match(cleaned)
    if match:
        organization_url = f"https://dev.azure.com/{match['org'].lower()}"
    else:
        match = _VISUALSTUDIO_RE.match(cleaned)
        if not match:
            raise _invalid(url)
        organization_url = f"https://{match['org'].lower()}.visualstudio.com"

    repo = unquote(match["repo"]).removesuffix(".git")
    pr_id = int(match["id"])
    if pr_id <= 0 or not repo:
        raise _invalid(url)

    return PullRequestRef(
        organization_url=organization_url,
        project=unquote(match["project"]),
        repository=repo,
        pull_request_id=pr_id,
    )
