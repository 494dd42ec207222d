from __future__ import annotations

import subprocess
import sys
from pathlib import Path


SCRIPT_PATH = Path(__file__).resolve().parents[2] / "scripts" / "bootstrap_user.py"


def _run_script(*args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
    return subprocess.run(
        [sys.executable, str(SCRIPT_PATH), *args],
        check=check,
        capture_output=True,
        text=True,
    )


def test_bootstrap_script_emits_upsert_for_freelancer() -> None:
    user_id = "00000000-0000-0000-0000-000000000123"
    output = _run_script(
        "--user-id",
        user_id,
        "--name",
        "Mona",
        "--role",
        "FREELANCER",
        "--email",
        "mona@example.com",
        "--connects",
        "20",
    ).stdout

    assert "insert into users (id, email, name, role, connects)" in output
    assert f"values ('{user_id}'::uuid, 'mona@example.com', 'Mona', 'FREELANCER'::user_role, 20)" in output
    assert "on conflict (id) do update" in output


def test_bootstrap_script_escapes_quotes_and_defaults_to_client() -> None:
    output = _run_script("--user-id", "00000000-0000-0000-0000-000000000456", "--name", "O'Brien").stdout

    assert "'O''Brien'" in output
    assert "'CLIENT'::user_role" in output
    assert ", null, " in output


def test_bootstrap_script_rejects_negative_connects() -> None:
    completed = _run_script(
        "--user-id",
        "00000000-0000-0000-0000-000000000789",
        "--name",
        "Sam",
        "--connects",
        "-1",
        check=False,
    )

    assert completed.returncode != 0
    assert "--connects must be non-negative" in completed.stderr
