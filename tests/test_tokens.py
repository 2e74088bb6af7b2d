from __future__ import annotations

import pytest

from clinicq.tokens import format_token, is_valid_token, kind_rank, token_kind, token_sequence


def test_format_token_pads_and_numbers_sessions_from_one() -> None:
    assert format_token("A", 7, 0) == "A1-007"
    assert format_token("w", 12, 1) == "W2-012"


def test_format_token_rejects_unknown_kinds() -> None:
    with pytest.raises(ValueError):
        format_token("X", 1, 0)


@pytest.mark.parametrize(
    ("token", "valid"),
    [("A1-001", True), ("W2-010", True), ("A12", True), (" a3 ", True), ("X1-001", False), ("A-1", False), ("", False)],
)
def test_is_valid_token(token: str, valid: bool) -> None:
    assert is_valid_token(token) is valid


@pytest.mark.parametrize(
    ("token", "kind", "rank"),
    [("A1-001", "A", 0), ("W1-001", "W", 1), ("P1", "", 2), ("", "", 2)],
)
def test_kind_and_rank(token: str, kind: str, rank: int) -> None:
    assert token_kind(token) == kind
    assert kind_rank(token) == rank


@pytest.mark.parametrize(
    ("token", "sequence"),
    [("A1-007", (1, 7)), ("A12", (12,)), ("W2-010", (2, 10)), ("", ())],
)
def test_token_sequence(token: str, sequence: tuple) -> None:
    assert token_sequence(token) == sequence
