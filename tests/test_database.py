"""Tests for database URL handling."""

import ssl

from deliberate.config import Settings
from deliberate.database import get_engine_url_and_connect_args

BASE = "postgresql+asyncpg://u:p@db.example.com:5432/deliberate"


def test_plain_url_untouched():
    """No SSL options means no connect args."""
    assert get_engine_url_and_connect_args(BASE) == (BASE, {})


def test_sslmode_require_moves_to_connect_args():
    """sslmode is stripped and becomes an unverified SSL context."""
    url, connect_args = get_engine_url_and_connect_args(f"{BASE}?sslmode=require&application_name=api")
    assert url == f"{BASE}?application_name=api"
    assert isinstance(connect_args["ssl"], ssl.SSLContext)
    assert connect_args["ssl"].verify_mode == ssl.CERT_NONE


def test_sslmode_verify_full_verifies():
    """verify-full keeps certificate checks."""
    _, connect_args = get_engine_url_and_connect_args(f"{BASE}?sslmode=verify-full")
    assert connect_args["ssl"].verify_mode == ssl.CERT_REQUIRED


def test_sslmode_disable():
    """disable strips the option without enabling SSL."""
    assert get_engine_url_and_connect_args(f"{BASE}?sslmode=disable") == (BASE, {})


def test_postgres_scheme_normalized():
    """Hosted postgresql:// URLs get the asyncpg driver."""
    config = Settings(_env_file=None, database_url="postgresql://u:p@host/db")
    assert config.database_url == "postgresql+asyncpg://u:p@host/db"
