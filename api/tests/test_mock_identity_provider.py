from __future__ import annotations

import asyncio
import subprocess
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

import marketplace.core.security as security
from marketplace.services.errors import AuthenticationError

SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "mock_identity_provider.py"
USER_ID = "33333333-3333-3333-3333-333333333333"


@pytest.fixture
def identity_url() -> Iterator[str]:
    process = subprocess.Popen(
        [sys.executable, str(SCRIPT_PATH), "--port", "0", "--token", f"fixed-token={USER_ID}"],
        stdout=subprocess.PIPE,
        text=True,
    )
    try:
        assert process.stdout is not None
        banner = process.stdout.readline().strip()
        assert banner.startswith("mock-identity listening on ")
        yield banner.removeprefix("mock-identity listening on ")
    finally:
        process.terminate()
        process.wait(timeout=5)


def _fetch(url: str, token: str) -> dict:
    return asyncio.run(
        security._fetch_supabase_user(
            supabase_url=url,
            supabase_anon_key="anon",
            token=token,
            timeout_seconds=5.0,
        )
    )


def test_mapped_and_dev_tokens_resolve_to_user_ids(identity_url: str) -> None:
    assert _fetch(identity_url, "fixed-token")["id"] == USER_ID
    assert _fetch(identity_url, f"dev-{USER_ID}")["id"] == USER_ID


def test_unknown_token_is_rejected(identity_url: str) -> None:
    with pytest.raises(AuthenticationError):
        _fetch(identity_url, "unknown")


def test_malformed_token_mapping_exits_with_error() -> None:
    completed = subprocess.run(
        [sys.executable, str(SCRIPT_PATH), "--port", "0", "--token", "missing-separator"],
        capture_output=True,
        text=True,
        timeout=10,
    )
    assert completed.returncode != 0
    assert "expected TOKEN=USER_ID" in completed.stderr
