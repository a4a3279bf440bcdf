"""Credential helpers used by seeding and the legacy-format detector.

Stored credentials have the form ``"<hex scrypt digest>.<hex salt>"``.
Anything else is a legacy record (see
:meth:`topgames.repositories.sql.DatabaseStorage.seed_initial_data`).
"""
import hashlib
import hmac
import re
import secrets

_KEY_LEN = 64
_CREDENTIAL_RE = re.compile(r'^[0-9a-f]+\.[0-9a-f]+$')


def _derive(password: str, salt: str) -> bytes:
    return hashlib.scrypt(password.encode('utf-8'), salt=salt.encode('utf-8'),
                          n=16384, r=8, p=1, dklen=_KEY_LEN)


def hash_password(password: str) -> str:
    """Return a new salted credential string for *password*."""
    salt = secrets.token_hex(16)
    return f"{_derive(password, salt).hex()}.{salt}"


def verify_password(password: str, stored: str) -> bool:
    """Constant-time check of *password* against a stored credential."""
    if not is_supported_credential(stored):
        return False
    digest, salt = stored.split('.', 1)
    return hmac.compare_digest(bytes.fromhex(digest), _derive(password, salt))


def is_supported_credential(stored) -> bool:
    """True if *stored* is in the current ``digest.salt`` format."""
    return isinstance(stored, str) and bool(_CREDENTIAL_RE.match(stored))
