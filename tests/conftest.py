"""Shared fixtures for boardsync tests."""

import sys
from pathlib import Path

import pytest

# Ensure the package is importable without installing it
sys.path.insert(0, str(Path(__file__).parent.parent))

from boardsync.cache import OptimisticCache
from boardsync.schema import Card, Column


def make_column(cid, *card_ids):
    """Cards with dense orders in the given sequence."""
    return [Card(card_id=c, column_id=cid, title=f"Card {c}", order=i) for i, c in enumerate(card_ids)]


@pytest.fixture
def columns():
    return [
        Column(column_id="A", board_id="board-1", name="To do", order=0),
        Column(column_id="B", board_id="board-1", name="Doing", order=1),
        Column(column_id="C", board_id="board-1", name="Done", order=2),
    ]


@pytest.fixture
def cards():
    """A = [card1, card2, card3], B = [card4, card5], C = []."""
    return make_column("A", "card1", "card2", "card3") + make_column("B", "card4", "card5")


@pytest.fixture
def collections(cards):
    return {
        "A": [c for c in cards if c.column_id == "A"],
        "B": [c for c in cards if c.column_id == "B"],
        "C": [],
    }


@pytest.fixture
def cache(cards, columns):
    return OptimisticCache(cards, columns)
