"""Validation utilities for assembly requests and incoming bank items."""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Sequence, Tuple
from uuid import uuid4

from .domain import BAND_ORDER, DifficultyBand, band_for_score, matches_filters, plan_buckets
from .models import (
    AssemblyConfig,
    FeasibilityReport,
    FeasibilitySuggestion,
    Item,
    ItemCreate,
    ItemImportFailure,
)


DIFFICULTY_SUM_TOLERANCE = 0.01
MCQ_ANSWER_LABELS = ("A", "B", "C", "D")
CLOZE_BLANK = "___"
DEFAULT_DIFFICULTY = 0.5
DEFAULT_MCQ_OPTIONS = ["Option A", "Option B", "Option C", "Option D"]


class ValidationError(ValueError):
    """Raised when an item or request fails business-rule validation."""


class ConfigValidationError(ValidationError):
    """Raised when an assembly configuration is malformed before the engine runs."""


def validate_assembly_config(config: AssemblyConfig) -> None:
    """Reject configurations the engine must never see.

    Shape errors (unknown types or levels, negative counts) are already caught
    by the pydantic models; this checks the cross-field rules.
    """

    distribution_sum = sum(config.item_distribution.values())
    if distribution_sum != config.total_items:
        raise ConfigValidationError(
            f"Item distribution sums to {distribution_sum} but total_items is {config.total_items}"
        )
    if config.total_items == 0:
        return
    difficulty_sum = config.difficulty_distribution.total()
    if abs(difficulty_sum - 1.0) > DIFFICULTY_SUM_TOLERANCE:
        raise ConfigValidationError(
            f"Difficulty distribution must sum to 1.0 (got {difficulty_sum:.2f})"
        )


def validate_feasibility(snapshot: Sequence[Item], config: AssemblyConfig) -> FeasibilityReport:
    """Count supply against the planned buckets without selecting anything."""

    buckets = [bucket for bucket in plan_buckets(config) if bucket.target > 0]
    if config.total_items == 0 or not buckets:
        return FeasibilityReport(is_valid=True)

    requested = config.requested_types()
    candidates = [item for item in snapshot if item.type in requested and matches_filters(item, config)]
    available_by_type = Counter(item.type for item in candidates)
    available_by_band = Counter(band_for_score(item.difficulty_score) for item in candidates)

    required_by_band: Dict[DifficultyBand, int] = {band: 0 for band in BAND_ORDER}
    for bucket in buckets:
        required_by_band[bucket.band] += bucket.target

    issues: List[str] = []
    suggestions: List[FeasibilitySuggestion] = []

    for item_type in requested:
        required = config.item_distribution[item_type]
        available = available_by_type.get(item_type, 0)
        if available < required:
            issues.append(f"Insufficient {item_type} items: need {required}, have {available}")
            suggestions.append(FeasibilitySuggestion(type=item_type, available=available, required=required))

    for band in BAND_ORDER:
        required = required_by_band[band]
        available = available_by_band.get(band, 0)
        if available < required:
            issues.append(f"Insufficient {band.value} items: need {required}, have {available}")
            suggestions.append(FeasibilitySuggestion(type=band.value, available=available, required=required))

    return FeasibilityReport(is_valid=not issues, issues=issues, suggestions=suggestions)


def validate_item(item: Item) -> None:
    """Structural checks applied before an item enters the bank."""

    if not item.stem.strip():
        raise ValidationError(f"Item {item.id} rejected due to empty stem")
    if item.type == "mcq":
        options = item.options_json
        if not isinstance(options, list) or len(options) < 2:
            raise ValidationError(f"Item {item.id} rejected: MCQ items require at least two options")
        if not all(isinstance(option, str) and option.strip() for option in options):
            raise ValidationError(f"Item {item.id} rejected: MCQ options must be non-empty strings")
        if item.answer_json not in MCQ_ANSWER_LABELS:
            raise ValidationError(f"Item {item.id} rejected: MCQ answer must be one of A-D")
    elif item.type == "cloze":
        if CLOZE_BLANK not in item.stem:
            raise ValidationError(f"Item {item.id} rejected: cloze stems need a '{CLOZE_BLANK}' blank")
    elif item.type == "matching":
        options = item.options_json
        if not isinstance(options, dict) or not options.get("left") or not options.get("right"):
            raise ValidationError(f"Item {item.id} rejected: matching items need left and right columns")


def normalise_item(payload: ItemCreate, owner_id: str) -> Item:
    """Build a bank item from an import payload, filling defaults.

    Difficulty is clamped into [0, 1]. MCQ payloads without an option list
    get placeholder options, and answers outside A-D fall back to ``A``.
    """

    difficulty = DEFAULT_DIFFICULTY if payload.difficulty_score is None else payload.difficulty_score
    options = payload.options_json
    answer = payload.answer_json
    if payload.type == "mcq":
        if not isinstance(options, list):
            options = list(DEFAULT_MCQ_OPTIONS)
        if answer not in MCQ_ANSWER_LABELS:
            answer = MCQ_ANSWER_LABELS[0]
    return Item(
        id=payload.id or f"item_{uuid4().hex}",
        owner_id=owner_id,
        type=payload.type,
        level=payload.level,
        stem=payload.stem,
        difficulty_score=max(0.0, min(1.0, difficulty)),
        tags=payload.tags,
        options_json=options,
        answer_json=answer,
        explanation=payload.explanation,
        source=payload.source,
    )


def partition_items(
    payloads: Iterable[ItemCreate], owner_id: str
) -> Tuple[List[Item], List[ItemImportFailure]]:
    """Normalise a batch and split it into accepted items and rejections.

    Later payloads reusing an accepted identifier are rejected as duplicates.
    """

    accepted: List[Item] = []
    failed: List[ItemImportFailure] = []
    seen_ids = set()
    for payload in payloads:
        try:
            item = normalise_item(payload, owner_id)
            if item.id in seen_ids:
                raise ValidationError(f"Duplicate item identifier detected: {item.id}")
            validate_item(item)
        except ValueError as exc:
            failed.append(ItemImportFailure(original=payload.model_dump(), error=str(exc)))
            continue
        seen_ids.add(item.id)
        accepted.append(item)
    return accepted, failed


__all__ = [
    "ConfigValidationError",
    "ValidationError",
    "normalise_item",
    "partition_items",
    "validate_assembly_config",
    "validate_feasibility",
    "validate_item",
]
