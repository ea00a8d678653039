"""
auth/tokens.py -- Password hashing, auto-login token values, and UA fingerprints.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). bcrypt.checkpw does
       the comparison in constant time. The _DUMMY_HASH constant enables
       timing equalization in Authenticator.login() so response time does not
       reveal whether a username exists.

  Auto-login tokens: secrets.token_hex(32) gives 256 bits of entropy. The
       value is the whole credential; there is nothing else in the cookie.

  User-agent fingerprints: SHA-256 of the raw User-Agent header. Only the
       digest is persisted. Comparison uses hmac.compare_digest so a probe
       cannot learn the stored fingerprint byte by byte.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets

import bcrypt

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password fields at 255 characters.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed hash in the DB (e.g. a legacy non-bcrypt value).
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("authgate_timing_dummy")


# ---------------------------------------------------------------------------
# Auto-login tokens
# ---------------------------------------------------------------------------


def generate_token() -> str:
    """Return a fresh 64-hex-char auto-login token value."""
    return secrets.token_hex(32)


def fingerprint_user_agent(user_agent: str | None) -> str:
    """Return the SHA-256 hex digest of a User-Agent header (missing header hashes as "")."""
    return hashlib.sha256((user_agent or "").encode("utf-8")).hexdigest()


def fingerprints_match(stored: str, user_agent: str | None) -> bool:
    """Constant-time check of a request's User-Agent against a stored fingerprint."""
    return hmac.compare_digest(stored or "", fingerprint_user_agent(user_agent))
