"""
Activation code generation and hashing.

Codes are handed to customers; only their SHA-256 digest is stored and
used for lookup. Hashing normalizes case and surrounding whitespace so
that a code typed as " abcd1234efgh5678 " matches its stored digest.
"""

import hashlib
import re
import secrets
import string

ACTIVATION_CODE_LENGTH = 16
ACTIVATION_CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_HASH_LENGTH = 64

_CODE_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def generate_activation_code() -> str:
    """
    Generate a fixed-length, uppercase alphanumeric activation code.

    Returns:
        Activation code string
    """
    return "".join(secrets.choice(ACTIVATION_CODE_ALPHABET) for _ in range(ACTIVATION_CODE_LENGTH))


def normalize_activation_code(code: str) -> str:
    """Trim and uppercase a submitted code."""
    return code.strip().upper()


def hash_activation_code(code: str) -> str:
    """
    Hash an activation code for storage.

    Args:
        code: Plaintext activation code

    Returns:
        Lowercase hex SHA-256 digest of the normalized code
    """
    return hashlib.sha256(normalize_activation_code(code).encode()).hexdigest()


def looks_like_code_hash(value) -> bool:
    """Whether a submitted value is a code hash rather than a plaintext code."""
    return isinstance(value, str) and bool(_CODE_HASH_PATTERN.match(value))


def verify_activation_code(plain_code, stored_hash) -> bool:
    """
    Verify a plaintext code against a stored hash in constant time.

    Any malformed input fails closed.

    Args:
        plain_code: Plaintext activation code
        stored_hash: Stored hex digest

    Returns:
        True if the code matches, False otherwise
    """
    if not isinstance(plain_code, str) or not plain_code.strip():
        return False
    if not looks_like_code_hash(stored_hash):
        return False
    return secrets.compare_digest(hash_activation_code(plain_code), stored_hash.lower())
