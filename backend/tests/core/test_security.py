"""Unit tests for core.security — bcrypt helpers."""

from dbfacade.core.security import HASH_PREFIX, hash_secret, is_hashed, verify_secret


def test_hash_has_bcrypt_prefix() -> None:
    h = hash_secret("secret123")
    assert h.startswith(HASH_PREFIX)
    assert h != "secret123"


def test_verify_secret() -> None:
    h = hash_secret("secret123")
    assert verify_secret("secret123", h)
    assert not verify_secret("otro", h)


def test_hashes_are_salted() -> None:
    assert hash_secret("x") != hash_secret("x")


def test_is_hashed() -> None:
    assert is_hashed("$2b$04$abcdefghijklmnopqrstuv")
    assert not is_hashed("plain")
    assert not is_hashed("")
    assert not is_hashed(None)


def test_explicit_rounds() -> None:
    h = hash_secret("secret123", rounds=5)
    assert h.split("$")[2] == "05"
    assert verify_secret("secret123", h)


def test_default_rounds_follow_settings() -> None:
    from dbfacade.core.config import settings

    assert hash_secret("x").split("$")[2] == f"{settings.HASH_ROUNDS:02d}"
