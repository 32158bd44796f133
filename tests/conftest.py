"""Shared fixtures for the paperforge test suite."""
from __future__ import annotations

import random
from typing import Callable, List

import pytest

from helpers import make_item
from paperforge.models import Item


@pytest.fixture
def item_factory() -> Callable[..., Item]:
    return make_item


@pytest.fixture
def sample_items() -> List[Item]:
    """Eleven-item bank: six MCQ, three cloze, two reading questions."""

    return [
        make_item("mcq1", "mcq", 0.2),
        make_item("mcq2", "mcq", 0.2),
        make_item("mcq3", "mcq", 0.5),
        make_item("mcq4", "mcq", 0.5),
        make_item("mcq5", "mcq", 0.8),
        make_item("mcq6", "mcq", 0.8),
        make_item("cloze1", "cloze", 0.3),
        make_item("cloze2", "cloze", 0.4),
        make_item("cloze3", "cloze", 0.7),
        make_item("reading1", "reading_q", 0.4),
        make_item("reading2", "reading_q", 0.6),
    ]


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)
