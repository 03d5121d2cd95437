"""Pickup token generation."""
from __future__ import annotations

import secrets
import string

BORROW_KEY_ALPHABET = string.ascii_letters + string.digits + '_-'
DEFAULT_BORROW_KEY_LENGTH = 10


def generate_borrow_key(length: int = DEFAULT_BORROW_KEY_LENGTH) -> str:
    """Return a random URL-safe key; unrelated to the borrow it identifies."""
    if length < 1:
        raise ValueError('borrow key length must be positive')
    return ''.join(secrets.choice(BORROW_KEY_ALPHABET) for _ in range(length))
