from __future__ import annotations

"""Pytest fixtures shared by the rotation tests.

No test touches a real registry or issuer: the core is exercised against the
in-memory doubles in ``tests/fakes.py``; backend adapters get a stubbed
Supabase client, mocked boto3 clients or an ``httpx.MockTransport``.
"""

import os
import sys
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Runtime env for the application
# ---------------------------------------------------------------------------

os.environ.setdefault("TABLE_NAME", "api_keys")
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test_key")
os.environ.setdefault("APP_ENV", "test")

# Ensure project root on PYTHONPATH so `import keyrotation` works when pytest is run
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from keyrotation.rotator import Rotator  # noqa: E402
from keyrotation.utils.retry import RetryPolicy  # noqa: E402
from tests.fakes import NOW, FakeIssuer, InMemoryRegistry  # noqa: E402

# Retries still happen, just without the backoff sleeps.
FAST_RETRY = RetryPolicy(attempts=3, timeout_seconds=2.0, max_wait_seconds=0)


@pytest.fixture()
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture()
def issuer() -> FakeIssuer:
    return FakeIssuer()


@pytest.fixture()
def clock():
    return lambda: NOW


@pytest.fixture()
def rotator(registry, issuer, clock) -> Rotator:
    return Rotator(registry, issuer, retry_policy=FAST_RETRY, clock=clock)
