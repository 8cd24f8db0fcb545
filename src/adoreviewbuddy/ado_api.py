"""Azure DevOps REST client using httpx with bearer token authentication.

Tokens come from an injected :class:`TokenProvider`.  The default chain
(resolved lazily on the first request, then cached per client):

1. ``AZURE_DEVOPS_TOKEN`` / ``SYSTEM_ACCESSTOKEN`` env vars
2. ``az account get-access-token --resource <audience>`` subprocess
3. Raises :exc:`AdoAuthError` telling the user to run ``az login``
"""

from __future__ import annotations

import logging
import os
import subprocess  # noqa: S404
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

import httpx

from adoreviewbuddy.config import get_config

if TYPE_CHECKING:
    from collections.abc import Sequence

    from adoreviewbuddy.models import PostResult, PullRequestRef

logger = logging.getLogger(__name__)

# Resource id of the Azure DevOps API; tokens must be issued for this audience.
ADO_RESOURCE_AUDIENCE = "499b84ac-1321-427f-aa17-267ca6975798"


# ---------------------------------------------------------------------------
# Error types
# ---------------------------------------------------------------------------


class AdoError(Exception):
    """Base class for adoreviewbuddy failures.

    ``partial_result`` is set when a posting run stops early, holding the
    outcomes of the comments attempted so far.
    """

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.partial_result: PostResult | None = None


class InvalidInputError(AdoError):
    """Raised for a malformed PR URL, index selection, or comments input."""


class AdoAuthError(AdoError):
    """Raised when no usable token is available or the service rejects it."""

    def __init__(self, detail: str = "") -> None:
        msg = (
            "Azure DevOps token not available or rejected. "
            "Run 'az login' (and 'az account set' for the right tenant), "
            "or set AZURE_DEVOPS_TOKEN to a bearer token."
        )
        if detail:
            msg = f"{detail}\n{msg}"
        super().__init__(msg, status_code=401)


class AdoTransportError(AdoError):
    """Raised for non-2xx responses, empty or non-JSON bodies, and network failures."""


# ---------------------------------------------------------------------------
# Token providers
# ---------------------------------------------------------------------------


class TokenProvider(Protocol):
    """Anything that can hand out a bearer token for a resource audience."""

    def get_token(self, audience: str) -> str | None: ...


class StaticTokenProvider:
    """Returns a fixed token. Useful for tests and embedding."""

    def __init__(self, token: str | None) -> None:
        self._token = token

    def get_token(self, audience: str) -> str | None:  # noqa: ARG002
        return self._token


class EnvTokenProvider:
    """Reads a ready-made bearer token from the first set environment variable."""

    def __init__(self, env_vars: Sequence[str]) -> None:
        self.env_vars = tuple(env_vars)

    def get_token(self, audience: str) -> str | None:  # noqa: ARG002
        for name in self.env_vars:
            token = os.environ.get(name, "").strip()
            if token:
                logger.debug("Azure DevOps token resolved from %s", name)
                return token
        return None


class AzureCliTokenProvider:
    """Asks the Azure CLI for an access token scoped to the audience.

    Relies on an existing ``az login`` session; never prompts.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout

    def get_token(self, audience: str) -> str | None:
        cmd = [
            "az",
            "account",
            "get-access-token",
            "--resource",
            audience,
            "--query",
            "accessToken",
            "-o",
            "tsv",
        ]
        try:
            result = subprocess.run(  # noqa: S603
                cmd,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as exc:
            logger.debug("az CLI token lookup failed: %s", exc)
            return None
        if result.returncode != 0:
            logger.debug("az CLI exited with %d: %s", result.returncode, result.stderr.strip())
            return None
        token = result.stdout.strip()
        if token:
            logger.debug("Azure DevOps token resolved from az CLI")
        return token or None


class ChainedTokenProvider:
    """Tries each provider in order and returns the first token found."""

    def __init__(self, providers: Sequence[TokenProvider]) -> None:
        self.providers = tuple(providers)

    def get_token(self, audience: str) -> str | None:
        for provider in self.providers:
            token = provider.get_token(audience)
            if token:
                return token
        return None


def default_token_provider() -> TokenProvider:
    """Build the env-var then Azure CLI provider chain from config."""
    auth = get_config().auth
    providers: list[TokenProvider] = [EnvTokenProvider(auth.token_env_vars)]
    if auth.use_azure_cli:
        providers.append(AzureCliTokenProvider(timeout=auth.azure_cli_timeout_seconds))
    return ChainedTokenProvider(providers)


# ---------------------------------------------------------------------------
# URL builders
# ---------------------------------------------------------------------------


def _repo_base(ref: PullRequestRef) -> str:
    return f"{ref.organization_url}/{quote(ref.project, safe='')}/_apis/git/repositories/{quote(ref.repository, safe='')}"


def pull_request_url(ref: PullRequestRef, api_version: str | None = None) -> str:
    """REST endpoint for the pull request itself."""
    version = api_version or get_config().api.api_version
    return f"{_repo_base(ref)}/pullrequests/{ref.pull_request_id}?api-version={version}"


def threads_url(ref: PullRequestRef, api_version: str | None = None) -> str:
    """REST endpoint for listing and creating the pull request's threads."""
    version = api_version or get_config().api.api_version
    return f"{_repo_base(ref)}/pullRequests/{ref.pull_request_id}/threads?api-version={version}"


def web_url(ref: PullRequestRef, thread_id: int | None = None) -> str:
    """Browser link to the pull request, or to one of its threads."""
    url = f"{ref.organization_url}/{quote(ref.project, safe='')}/_git/{quote(ref.repository, safe='')}/pullrequest/{ref.pull_request_id}"
    if thread_id is not None:
        url = f"{url}?discussionId={thread_id}"
    return url


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

_HTTP_UNAUTHORIZED = 401
_HTTP_FORBIDDEN = 403
_HTTP_NON_AUTHORITATIVE = 203


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        return body.get("message", response.text) if isinstance(body, dict) else response.text
    except ValueError:
        return response.text


def _raise_for_status(response: httpx.Response) -> None:
    """Raise the matching :exc:`AdoError` subclass for non-2xx responses."""
    # Azure DevOps answers 203 with an HTML sign-in page when the token is not accepted
    if response.status_code == _HTTP_NON_AUTHORITATIVE:
        raise AdoAuthError("Azure DevOps redirected to a sign-in page (HTTP 203).")

    if response.is_success:
        return

    if response.status_code == _HTTP_UNAUTHORIZED:
        raise AdoAuthError

    msg = _error_message(response)

    if response.status_code == _HTTP_FORBIDDEN:
        if "rate limit" in msg.lower():
            msg = f"Azure DevOps API rate limit exceeded: {msg}"
            raise AdoTransportError(msg, status_code=_HTTP_FORBIDDEN)
        raise AdoAuthError(f"Azure DevOps API access forbidden: {msg}")

    msg = f"Azure DevOps API error {response.status_code}: {msg}"
    raise AdoTransportError(msg, status_code=response.status_code)


def _parse_body(response: httpx.Response) -> Any:
    if not response.content or not response.content.strip():
        msg = f"Azure DevOps API returned an empty body (HTTP {response.status_code})"
        raise AdoTransportError(msg, status_code=response.status_code)
    try:
        return response.json()
    except ValueError as exc:
        msg = f"Azure DevOps API returned a non-JSON body (HTTP {response.status_code})"
        raise AdoTransportError(msg, status_code=response.status_code) from exc


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class AdoClient:
    """Synchronous JSON client for the Azure DevOps REST API.

    Issues one request at a time and never retries; callers decide what a
    failure means for them.
    """

    def __init__(
        self,
        token_provider: TokenProvider | None = None,
        *,
        audience: str = ADO_RESOURCE_AUDIENCE,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.token_provider = token_provider if token_provider is not None else default_token_provider()
        self.audience = audience
        self.timeout = timeout if timeout is not None else get_config().api.timeout_seconds
        self._transport = transport
        self._token: str | None = None

    def get_token(self) -> str:
        """Return the bearer token, resolving it on first use.

        Raises:
            AdoAuthError: If the provider has no token.
        """
        if self._token is None:
            token = self.token_provider.get_token(self.audience)
            if not token:
                raise AdoAuthError
            self._token = token
        return self._token

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.get_token()}",
            "Accept": "application/json",
        }

    def _request(self, method: str, url: str, body: Any = None) -> Any:
        headers = self._headers()
        logger.debug("%s %s", method, url)
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.request(method, url, headers=headers, json=body)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            msg = f"Request to Azure DevOps failed: {type(exc).__name__}: {exc}"
            raise AdoTransportError(msg) from exc

        _raise_for_status(response)
        return _parse_body(response)

    def get_json(self, url: str) -> Any:
        """GET *url* and return the parsed JSON body.

        Raises:
            AdoAuthError: On missing token or 401/403.
            AdoTransportError: On any other failure.
        """
        return self._request("GET", url)

    def post_json(self, url: str, body: Any) -> Any:
        """POST *body* as JSON to *url* and return the parsed JSON response.

        Raises:
            AdoAuthError: On missing token or 401/403.
            AdoTransportError: On any other failure.
        """
        return self._request("POST", url, body)
