"""
Token numbers: ``A1-001`` style advance tokens and ``W1-001`` walk-ins.

Legacy records carry the short form ``A12``; both are understood.
"""

from __future__ import annotations

import re
from typing import Tuple

from .config import ADVANCE_PREFIX, WALK_IN_PREFIX

_TOKEN_RE = re.compile(r"^([AW])(\d+)(?:-(\d+))?$")
_KIND_RANK = {ADVANCE_PREFIX: 0, WALK_IN_PREFIX: 1}


def format_token(kind: str, numeric: int, session_index: int) -> str:
    kind = kind.upper()
    if kind not in _KIND_RANK:
        raise ValueError(f"Unknown token kind: {kind!r}")
    return f"{kind}{session_index + 1}-{numeric:03d}"


def is_valid_token(token: str) -> bool:
    return bool(_TOKEN_RE.match((token or "").strip().upper()))


def token_kind(token: str) -> str:
    text = (token or "").strip().upper()
    if text[:1] in _KIND_RANK:
        return text[:1]
    return ""


def kind_rank(token: str) -> int:
    # Unknown prefixes sort after walk-ins.
    return _KIND_RANK.get(token_kind(token), len(_KIND_RANK))


def token_sequence(token: str) -> Tuple[int, ...]:
    """Numeric parts after the type letter: ``A1-007`` -> (1, 7), ``A12`` -> (12,)."""
    text = (token or "").strip().upper()
    if text[:1].isalpha():
        text = text[1:]
    return tuple(int(part) for part in re.findall(r"\d+", text))
