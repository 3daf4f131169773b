"""Token cost of text and JSON payloads, measured with tiktoken."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

import tiktoken

ENCODING_NAME = "cl100k_base"


@lru_cache(maxsize=1)
def _encoding() -> tiktoken.Encoding:
    # Loaded on first use; the encoding data is fetched once and cached by tiktoken
    return tiktoken.get_encoding(ENCODING_NAME)


def estimate_token_count(text: str | None) -> int:
    """
    Token count of a string under the cl100k_base encoding.

    Providers tokenize differently, so this is an estimate for budget
    decisions rather than an exact bill. Empty text costs nothing.
    """
    if not text:
        return 0
    return len(_encoding().encode(text, disallowed_special=()))


def estimate_json_tokens(value: Any) -> int:
    """Tokens of a value once serialized as JSON."""
    return estimate_token_count(json.dumps(value))


__all__ = ["ENCODING_NAME", "estimate_json_tokens", "estimate_token_count"]
