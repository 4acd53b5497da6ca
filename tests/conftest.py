"""
Pytest configuration and fixtures for keyspaces_sigv4 tests.

This module provides shared fixtures for testing the SigV4 authenticator:
static credentials, a fixed signing time, and an isolated environment so
that region and credential lookups never reach a developer's real AWS setup.

Usage:
    def test_something(static_chain, fixed_date):
        authenticator = SigV4Authenticator("us-west-2", static_chain, fixed_date)
"""

import datetime
import os
from unittest.mock import patch

import pytest

from keyspaces_sigv4.auth import AWSCredentials, CredentialChain
from tests.vectors import ACCESS_KEY, EPOCH_SECONDS, SECRET_KEY, SESSION_TOKEN


# ============================================================================
# Environment Fixtures
# ============================================================================

@pytest.fixture
def clean_env():
    """
    Run the test with an empty AWS environment.

    Config and credentials files point at paths that do not exist so that
    botocore's default chain finds nothing local.

    Yields:
        The patched environment mapping
    """
    env = {
        "AWS_CONFIG_FILE": "/nonexistent/aws/config",
        "AWS_SHARED_CREDENTIALS_FILE": "/nonexistent/aws/credentials",
    }
    with patch.dict(os.environ, env, clear=True):
        yield os.environ


# ============================================================================
# Credential Fixtures
# ============================================================================

@pytest.fixture
def static_credentials() -> AWSCredentials:
    """Credentials matching the known-answer vector."""
    return AWSCredentials(
        access_key=ACCESS_KEY,
        secret_key=SECRET_KEY,
        session_token=SESSION_TOKEN,
    )


@pytest.fixture
def static_chain() -> CredentialChain:
    """A chain holding only the known-answer credentials."""
    return CredentialChain.from_static(ACCESS_KEY, SECRET_KEY, SESSION_TOKEN)


@pytest.fixture
def fixed_date() -> datetime.datetime:
    """Signing time of the known-answer vector (2020-06-09T22:41:51Z)."""
    return datetime.datetime.fromtimestamp(EPOCH_SECONDS, tz=datetime.timezone.utc)


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires real AWS credentials)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is passed."""
    if config.getoption("--run-integration", default=False):
        return

    skip_integration = pytest.mark.skip(
        reason="Integration tests skipped. Use --run-integration to run."
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def pytest_addoption(parser):
    """Add custom command line options."""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests (requires real AWS credentials)",
    )
