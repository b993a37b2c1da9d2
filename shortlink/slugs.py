"""Slug generation and format checks."""

import re

from nanoid import generate

__all__ = ["ALPHABET", "generate_slug", "is_valid_slug"]

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"


def generate_slug(length: int) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


def is_valid_slug(slug: str, length: int) -> bool:
    return re.fullmatch(rf"[0-9a-zA-Z]{{{length}}}", slug) is not None
