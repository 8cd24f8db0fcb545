"""Global test fixtures for adoreviewbuddy."""

from __future__ import annotations

import pytest
from helpers.ado_payloads import PR_URL

from adoreviewbuddy.ado_api import AdoClient, StaticTokenProvider
from adoreviewbuddy.config import Config, set_config
from adoreviewbuddy.pr_url import parse_pr_url


@pytest.fixture(autouse=True)
def _default_config():
    """Reset config to defaults before every test.

    Keeps a developer's local .adoreviewbuddy.toml from leaking into tests.
    """
    set_config(Config())
    yield
    set_config(Config())


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep a developer's real token or config override out of the tests."""
    monkeypatch.delenv("ADOREVIEWBUDDY_CONFIG", raising=False)
    monkeypatch.delenv("AZURE_DEVOPS_TOKEN", raising=False)
    monkeypatch.delenv("SYSTEM_ACCESSTOKEN", raising=False)


@pytest.fixture
def pr_ref():
    return parse_pr_url(PR_URL)


@pytest.fixture
def ado_client() -> AdoClient:
    return AdoClient(StaticTokenProvider("tok_test"))
