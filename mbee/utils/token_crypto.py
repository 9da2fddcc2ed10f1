"""
Secret hashing and API token strings.

Passwords, API token secrets and incoming-webhook tokens are all stored as
Argon2id hashes. Login tokens look like ``mbee_<token_id>_<secret>``: the
token id is stored in clear for lookup, the secret only as a hash.
"""
from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from typing import Optional, Tuple

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from argon2.low_level import Type

TOKEN_PREFIX = "mbee_"

_hasher = PasswordHasher(time_cost=2, memory_cost=65536, parallelism=4, hash_len=32, type=Type.ID)


@dataclass(frozen=True)
class ParsedToken:
    token_id: str
    secret: str

    def __str__(self) -> str:
        return build_token_string(self.token_id, self.secret)


def build_token_string(token_id: str, secret: str) -> str:
    return f"{TOKEN_PREFIX}{token_id}_{secret}"


def parse_token(token: Optional[str]) -> Optional[ParsedToken]:
    """Split a token string into its id and secret, or None when malformed."""
    if not token or not token.startswith(TOKEN_PREFIX):
        return None
    # the id is hex; everything after the first underscore is the secret
    token_id, sep, secret = token[len(TOKEN_PREFIX):].partition("_")
    if not sep or not token_id or not secret:
        return None
    return ParsedToken(token_id=token_id, secret=secret)


def generate_token() -> Tuple[str, str, str]:
    """Generate a new token and return (token_id, secret, full_token)."""
    parsed = ParsedToken(token_id=uuid.uuid4().hex[:16], secret=secrets.token_urlsafe(32))
    return parsed.token_id, parsed.secret, str(parsed)


def hash_secret(secret: str) -> str:
    return _hasher.hash(secret)


def verify_secret(secret: Optional[str], encoded_hash: Optional[str]) -> bool:
    """Check ``secret`` against a stored hash; missing values never match."""
    if not secret or not encoded_hash:
        return False
    try:
        return _hasher.verify(encoded_hash, secret)
    except (VerificationError, InvalidHashError):
        return False
