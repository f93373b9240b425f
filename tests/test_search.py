"""Unit tests for the organization search filter."""

from __future__ import annotations

import pytest

from src.dealboard.board.search import filter_deals


@pytest.fixture
def deals(make_deal):
    return [
        make_deal(id="1", organization="ACME Corp"),
        make_deal(id="2", organization="Globex"),
        make_deal(id="3", organization="Acme Logistics"),
    ]


def test_case_insensitive_substring(deals):
    assert [d.id for d in filter_deals(deals, "acme")] == ["1", "3"]


def test_match_in_middle(deals):
    assert [d.id for d in filter_deals(deals, "LOB")] == ["2"]


@pytest.mark.parametrize("query", ["", "   ", None])
def test_blank_query_returns_input_unchanged(deals, query):
    assert filter_deals(deals, query) == deals


def test_no_match(deals):
    assert filter_deals(deals, "initech") == []


def test_casefold_handles_special_case_letters(make_deal):
    deal = make_deal(organization="Straße Bau")
    assert filter_deals([deal], "STRASSE") == [deal]
