# tests/core/test_security.py
from __future__ import annotations

import jwt
import pytest

from parcelwms.core.config import AppSettings
from parcelwms.core.security import create_access_token, decode_access_token, ensure_secret_configured


def test_token_roundtrip():
    token = create_access_token({"sub": "user-ops"})
    claims = decode_access_token(token)
    assert claims is not None
    assert claims["sub"] == "user-ops"
    assert "exp" in claims


def test_token_signed_with_other_secret_is_rejected():
    forged = jwt.encode({"sub": "user-admin"}, "not-the-secret", algorithm="HS256")
    assert decode_access_token(forged) is None


def test_garbage_token_is_rejected():
    assert decode_access_token("not-a-jwt") is None


def test_default_secret_refused_outside_dev():
    with pytest.raises(RuntimeError):
        ensure_secret_configured(AppSettings(ENV="prod", JWT_SECRET="dev-temp-secret"))


def test_default_secret_allowed_in_dev():
    ensure_secret_configured(AppSettings(ENV="dev", JWT_SECRET="dev-temp-secret"))
