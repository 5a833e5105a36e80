from __future__ import annotations

from typing import Optional
from werkzeug.security import generate_password_hash, check_password_hash

PASSWORD_HASH_METHOD = "pbkdf2:sha256"


def hash_password(plain: str) -> str:
    return generate_password_hash(plain or "", method=PASSWORD_HASH_METHOD)


def is_hashed(value: Optional[str]) -> bool:
    if not value:
        return False
    v = str(value)
    # Werkzeug hashes start with the method prefix like 'pbkdf2:sha256:'
    return v.startswith("pbkdf2:") or v.startswith("scrypt:")


def verify_password(stored_value: Optional[str], candidate: str) -> bool:
    """Verify a candidate password against a stored Werkzeug hash.

    Unhashed or empty stored values never verify.
    """
    if not is_hashed(stored_value):
        return False
    return check_password_hash(stored_value, candidate or "")
