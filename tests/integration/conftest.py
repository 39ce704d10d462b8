"""
Integration Test Configuration

Live tests talk to real search engines and the completion API. In CI
(CI=true) anything marked slow is skipped; tests that need a credential
request it through a fixture that skips when it is not configured.
"""

import os

import pytest

from unimatch.utils.credential_manager import OPENAI_API_KEY, CredentialManager


@pytest.fixture
def is_ci_environment() -> bool:
    """True when the CI environment variable is 'true'."""
    return os.getenv("CI", "").lower() == "true"


@pytest.fixture(autouse=True)
def skip_slow_tests_in_ci(request, is_ci_environment):
    """Skip @pytest.mark.slow tests in CI; they depend on third-party uptime."""
    if is_ci_environment and request.node.get_closest_marker("slow"):
        pytest.skip("Skipping slow test in CI environment")


@pytest.fixture
def credentials() -> CredentialManager:
    """Credentials from the shell environment, seeded from .env when present."""
    return CredentialManager()


@pytest.fixture
def openai_api_key(credentials) -> str:
    key = credentials.get_credential(OPENAI_API_KEY)
    if key is None:
        pytest.skip(f"{OPENAI_API_KEY} not configured")
    return key
