"""tests/test_auth.py — authentication snapshot freshness"""
import os
import time

import pytest

from dast_scanner.auth import AuthGate
from dast_scanner.errors import AuthStateError
from dast_scanner.models import AuthState


@pytest.fixture()
def auth_file(tmp_path):
    path = tmp_path / ".auth" / "user.json"
    path.parent.mkdir(parents=True)
    path.write_text('{"cookies": [], "origins": []}')
    return path


def _age(path, minutes: float) -> float:
    """Backdate the file; returns the 'now' to evaluate against."""
    now = time.time()
    mtime = now - minutes * 60
    os.utime(path, (mtime, mtime))
    return now


def test_absent(tmp_path):
    gate = AuthGate(tmp_path / "missing.json")
    status = gate.status()
    assert status.state == AuthState.ABSENT
    assert status.age_minutes is None


def test_fresh_just_under_an_hour(auth_file):
    now = _age(auth_file, 59)
    status = AuthGate(auth_file).status(now)
    assert status.state == AuthState.FRESH
    assert round(status.age_minutes) == 59


def test_exactly_an_hour_is_expired(auth_file):
    now = _age(auth_file, 60)
    assert AuthGate(auth_file).status(now).state == AuthState.EXPIRED


def test_expired(auth_file):
    now = _age(auth_file, 61)
    assert AuthGate(auth_file).status(now).state == AuthState.EXPIRED


def test_require_fresh_absent(tmp_path):
    with pytest.raises(AuthStateError) as exc:
        AuthGate(tmp_path / "missing.json").require_fresh()
    assert exc.value.message == "No authentication found."
    assert exc.value.hint == "Run: dast-scanner auth"
    assert exc.value.exit_code == 1


def test_require_fresh_expired(auth_file):
    now = _age(auth_file, 90)
    with pytest.raises(AuthStateError) as exc:
        AuthGate(auth_file).require_fresh(now)
    assert exc.value.message == "Authentication expired (90 minutes old)."


def test_require_fresh_ok(auth_file):
    now = _age(auth_file, 5)
    assert AuthGate(auth_file).require_fresh(now).state == AuthState.FRESH


def test_clear(auth_file):
    gate = AuthGate(auth_file)
    assert gate.clear() is True
    assert not auth_file.exists()
    assert gate.clear() is False
