"""Agent credential format.

A credential is ``chatr_`` followed by 32 lowercase hex characters
(128 random bits). Only its SHA-256 digest is ever stored.
"""

import hashlib
import re
import secrets

CREDENTIAL_PREFIX = "chatr_"
CREDENTIAL_LENGTH = len(CREDENTIAL_PREFIX) + 32

_CREDENTIAL_PATTERN = re.compile(rf"^{CREDENTIAL_PREFIX}[0-9a-f]{{32}}$")


def generate_credential() -> str:
    return CREDENTIAL_PREFIX + secrets.token_hex(16)


def is_well_formed(token: str) -> bool:
    """Cheap prefix/length check done before any directory lookup."""
    return len(token) == CREDENTIAL_LENGTH and bool(_CREDENTIAL_PATTERN.match(token))


def hash_credential(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()
