"""Item and config factories shared by the test modules."""
from __future__ import annotations

from typing import List, Optional

from paperforge.models import AssemblyConfig, DifficultyDistribution, Item


def make_item(
    item_id: str,
    item_type: str,
    difficulty: float,
    level: str = "A2",
    tags: Optional[List[str]] = None,
    usage_count: int = 0,
) -> Item:
    options = ["one", "two", "three", "four"] if item_type == "mcq" else None
    stem = f"Test question {item_id} ___" if item_type == "cloze" else f"Test question {item_id}"
    return Item(
        id=item_id,
        type=item_type,
        level=level,
        difficulty_score=difficulty,
        tags=tags or [],
        usage_count=usage_count,
        stem=stem,
        options_json=options,
        answer_json="A",
    )


def make_config(
    distribution: dict,
    easy: float,
    medium: float,
    hard: float,
    total: Optional[int] = None,
    level: str = "A2",
    **extra,
) -> AssemblyConfig:
    return AssemblyConfig(
        total_items=sum(distribution.values()) if total is None else total,
        item_distribution=distribution,
        difficulty_distribution=DifficultyDistribution(easy=easy, medium=medium, hard=hard),
        level=level,
        **extra,
    )
