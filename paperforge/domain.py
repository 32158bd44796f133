"""Domain primitives shared by the planner, selector and coordinator."""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Sequence, Tuple

from .models import AssemblyConfig, DifficultyDistribution, Item


class DifficultyBand(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


BAND_ORDER: List[DifficultyBand] = [DifficultyBand.EASY, DifficultyBand.MEDIUM, DifficultyBand.HARD]

# Half-open ranges; hard is closed at 1.0.
BAND_RANGES: Dict[DifficultyBand, Tuple[float, float]] = {
    DifficultyBand.EASY: (0.0, 0.3),
    DifficultyBand.MEDIUM: (0.3, 0.6),
    DifficultyBand.HARD: (0.6, 1.0),
}


def band_for_score(score: float) -> DifficultyBand:
    """Return the single band a difficulty score falls into."""

    if score < BAND_RANGES[DifficultyBand.EASY][1]:
        return DifficultyBand.EASY
    if score < BAND_RANGES[DifficultyBand.MEDIUM][1]:
        return DifficultyBand.MEDIUM
    return DifficultyBand.HARD


class FallbackStrategy(str, Enum):
    DIFFICULTY_RELAXED = "difficulty_distribution_relaxed"
    TYPES_SUBSTITUTED = "item_types_substituted"
    TOTAL_REDUCED = "total_items_reduced"
    EMERGENCY = "emergency_fallback"


# Every type ranks all other types; earlier entries are closer substitutes.
SUBSTITUTION_PREFERENCES: Dict[str, List[str]] = {
    "mcq": ["cloze", "matching", "error_correction", "reading_q", "writing_task"],
    "cloze": ["mcq", "error_correction", "matching", "reading_q", "writing_task"],
    "error_correction": ["cloze", "mcq", "matching", "reading_q", "writing_task"],
    "matching": ["mcq", "cloze", "error_correction", "reading_q", "writing_task"],
    "reading_q": ["writing_task", "cloze", "mcq", "error_correction", "matching"],
    "writing_task": ["reading_q", "error_correction", "cloze", "mcq", "matching"],
}


@dataclass(frozen=True)
class DistributionBucket:
    """Target count for one (item type, difficulty band) pairing."""

    item_type: str
    band: DifficultyBand
    target: int


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (``round`` uses banker's rounding)."""

    return int(math.floor(value + 0.5))


def plan_difficulty_split(type_count: int, fractions: DifficultyDistribution) -> Dict[DifficultyBand, int]:
    """Split a type's count into band targets; hard absorbs the rounding remainder.

    The three targets always sum to ``type_count``. Fractions summing to more
    than 1.0 can leave ``hard`` negative, which selects nothing.
    """

    easy = round_half_up(type_count * fractions.easy)
    medium = round_half_up(type_count * fractions.medium)
    return {
        DifficultyBand.EASY: easy,
        DifficultyBand.MEDIUM: medium,
        DifficultyBand.HARD: type_count - easy - medium,
    }


def plan_buckets(config: AssemblyConfig) -> List[DistributionBucket]:
    buckets: List[DistributionBucket] = []
    for item_type, count in config.item_distribution.items():
        if count <= 0:
            continue
        split = plan_difficulty_split(count, config.difficulty_distribution)
        for band in BAND_ORDER:
            buckets.append(DistributionBucket(item_type=item_type, band=band, target=split[band]))
    return buckets


def _overlaps(tags: Iterable[str], wanted: Sequence[str]) -> bool:
    return bool(set(tags) & set(wanted))


def matches_filters(item: Item, config: AssemblyConfig) -> bool:
    """Level, topic and tag constraints shared by every bucket of a config."""

    if item.level != config.level:
        return False
    if config.topics and not _overlaps(item.tags, config.topics):
        return False
    if config.tags and not _overlaps(item.tags, config.tags):
        return False
    return True


def type_candidates(snapshot: Sequence[Item], config: AssemblyConfig, item_type: str) -> List[Item]:
    return [item for item in snapshot if item.type == item_type and matches_filters(item, config)]


def split_by_band(items: Iterable[Item]) -> Dict[DifficultyBand, List[Item]]:
    groups: Dict[DifficultyBand, List[Item]] = {band: [] for band in BAND_ORDER}
    for item in items:
        groups[band_for_score(item.difficulty_score)].append(item)
    return groups


def effective_difficulty(items: Sequence[Item]) -> DifficultyDistribution:
    """Band mix actually present in a selection, as two-decimal fractions."""

    if not items:
        return DifficultyDistribution(easy=0.0, medium=0.0, hard=0.0)
    groups = split_by_band(items)
    total = len(items)
    return DifficultyDistribution(
        easy=round(len(groups[DifficultyBand.EASY]) / total, 2),
        medium=round(len(groups[DifficultyBand.MEDIUM]) / total, 2),
        hard=round(len(groups[DifficultyBand.HARD]) / total, 2),
    )


__all__ = [
    "BAND_ORDER",
    "BAND_RANGES",
    "DifficultyBand",
    "DistributionBucket",
    "FallbackStrategy",
    "SUBSTITUTION_PREFERENCES",
    "band_for_score",
    "effective_difficulty",
    "matches_filters",
    "plan_buckets",
    "plan_difficulty_split",
    "round_half_up",
    "split_by_band",
    "type_candidates",
]
