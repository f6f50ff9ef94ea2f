from functools import lru_cache

from passlib.context import CryptContext

from dbfacade.core.config import settings


@lru_cache(maxsize=8)
def get_context(rounds: int) -> CryptContext:
    """bcrypt context for one cost factor (cached per cost)."""
    return CryptContext(
        schemes=["bcrypt"],
        deprecated="auto",
        bcrypt__rounds=rounds,
    )


pwd_context = get_context(settings.HASH_ROUNDS)

# Every bcrypt variant ($2a$, $2b$, $2y$) starts with this.
HASH_PREFIX = "$2"


# ---------------------------------------------------------------------------
# One-way hashing for sensitive fields (bcrypt)
# ---------------------------------------------------------------------------


def is_hashed(value: str | None) -> bool:
    return bool(value) and value.startswith(HASH_PREFIX)


def hash_secret(plain: str, rounds: int | None = None) -> str:
    context = pwd_context if rounds is None else get_context(rounds)
    return context.hash(plain)


def verify_secret(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)
