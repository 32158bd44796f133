"""Core services implementing paper assembly with graceful fallback."""
from __future__ import annotations

import random
import sys
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Set
from uuid import uuid4

from loguru import logger

from .domain import (
    BAND_ORDER,
    SUBSTITUTION_PREFERENCES,
    DifficultyBand,
    FallbackStrategy,
    effective_difficulty,
    plan_difficulty_split,
    split_by_band,
    type_candidates,
)
from .metrics import METRICS
from .models import (
    ITEM_TYPES,
    AssembledPaper,
    AssembleRequest,
    AssembleResponse,
    AssemblyConfig,
    CommitPaperRequest,
    CommitPaperResponse,
    FallbackResult,
    FeasibilityReport,
    Item,
    ItemBatchResponse,
    ItemCreate,
    PaperItem,
    PaperSection,
)
from .repositories import ItemRepository
from .validators import partition_items, validate_assembly_config, validate_feasibility


SECTION_TITLES: Dict[str, str] = {
    "mcq": "Multiple choice",
    "cloze": "Cloze",
    "error_correction": "Error correction",
    "matching": "Matching",
    "reading_q": "Reading comprehension",
    "writing_task": "Writing",
}

SECTION_INSTRUCTIONS: Dict[str, str] = {
    "mcq": "Choose the best answer from the options given.",
    "cloze": "Fill in each blank with a suitable word.",
    "error_correction": "Find the mistake in each sentence and correct it.",
    "matching": "Match the items in the left column with the right column.",
    "reading_q": "Read the passage carefully and answer the questions.",
    "writing_task": "Complete the writing task as instructed.",
}

ITEM_POINTS: Dict[str, int] = {
    "mcq": 2,
    "cloze": 2,
    "error_correction": 3,
    "matching": 2,
    "reading_q": 4,
    "writing_task": 15,
}


class InsufficientItemsError(ValueError):
    """Raised when not a single usable item could be assembled."""


@dataclass
class EngineConfig:
    """Tunable constants of the selection pipeline."""

    oversample_factor: int = 2
    emergency_limit: int = 10


def configure_logging(level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=level.upper(),
        format="<dim>{time:HH:mm:ss}</dim> | <level>{level: <8}</level> | {name} | {message}",
    )


# region Selector
def select_bucket(
    candidates: Sequence[Item],
    count: int,
    rng: random.Random,
    exclude: Optional[Set[str]] = None,
    oversample_factor: int = 2,
) -> List[Item]:
    """Pick up to ``count`` items: least used first, shuffled within an oversampled head.

    Returning fewer than ``count`` items signals a shortfall to the caller.
    """

    if count <= 0:
        return []
    excluded = set(exclude or ())
    ranked: List[Item] = []
    for item in sorted(candidates, key=lambda candidate: candidate.usage_count):
        if item.id in excluded:
            continue
        excluded.add(item.id)
        ranked.append(item)
    pool = ranked[: min(oversample_factor * count, len(ranked))]
    rng.shuffle(pool)
    return pool[:count]


# endregion


@dataclass
class SelectionRun:
    """Items picked by one pass of planner and selector over a config."""

    by_type: Dict[str, List[Item]] = field(default_factory=dict)
    short_bands: Dict[str, List[DifficultyBand]] = field(default_factory=dict)

    @property
    def items(self) -> List[Item]:
        return [item for picked in self.by_type.values() for item in picked]

    def count(self) -> int:
        return sum(len(picked) for picked in self.by_type.values())

    def yielded(self) -> Dict[str, int]:
        return {item_type: len(picked) for item_type, picked in self.by_type.items()}


def scale_distribution(
    distribution: Dict[str, int], new_total: int, caps: Dict[str, int]
) -> Dict[str, int]:
    """Scale counts proportionally to ``new_total`` without exceeding per-type caps.

    Floors each share, then hands the remainder to the largest
    types that still have spare capacity.
    """

    current_total = sum(count for count in distribution.values() if count > 0)
    if current_total <= 0 or new_total <= 0:
        return {}
    scaled: Dict[str, int] = {}
    for item_type, count in distribution.items():
        if count <= 0:
            continue
        scaled[item_type] = min(count * new_total // current_total, caps.get(item_type, 0))
    remainder = new_total - sum(scaled.values())
    for item_type in sorted(scaled, key=lambda key: -distribution[key]):
        if remainder <= 0:
            break
        spare = caps.get(item_type, 0) - scaled[item_type]
        if spare > 0:
            grant = min(spare, remainder)
            scaled[item_type] += grant
            remainder -= grant
    return {item_type: count for item_type, count in scaled.items() if count > 0}


class FallbackCoordinator:
    """Walks the fallback ladder for a single assembly call.

    Direct -> relax difficulty -> substitute types -> reduce total -> emergency.
    Each rung runs at most once and the walk stops at the first rung whose
    selection meets the (possibly adjusted) target.
    """

    def __init__(
        self,
        snapshot: Sequence[Item],
        config: AssemblyConfig,
        rng: Optional[random.Random] = None,
        engine_config: Optional[EngineConfig] = None,
    ) -> None:
        self._snapshot = list(snapshot)
        self._requested = config
        self._rng = rng or random.Random()
        self._engine = engine_config or EngineConfig()
        self._fallbacks: List[str] = []
        self._warnings: List[str] = []
        self._difficulty_relaxed = False

    def _select(self, candidates: Sequence[Item], count: int, exclude: Set[str]) -> List[Item]:
        return select_bucket(
            candidates, count, self._rng, exclude=exclude, oversample_factor=self._engine.oversample_factor
        )

    def _run(self, config: AssemblyConfig, top_up: bool) -> SelectionRun:
        run = SelectionRun()
        for item_type, count in config.item_distribution.items():
            if count <= 0:
                continue
            candidates = type_candidates(self._snapshot, config, item_type)
            groups = split_by_band(candidates)
            split = plan_difficulty_split(count, config.difficulty_distribution)
            picked: List[Item] = []
            for band in BAND_ORDER:
                target = split[band]
                if target <= 0:
                    continue
                chosen = self._select(groups[band], target, {item.id for item in picked})
                if len(chosen) < target:
                    run.short_bands.setdefault(item_type, []).append(band)
                picked.extend(chosen)
            # A negative hard target lets easy + medium overshoot the type's count.
            picked = picked[:count]
            if top_up and len(picked) < count:
                picked.extend(self._select(candidates, count - len(picked), {item.id for item in picked}))
            run.by_type[item_type] = picked
        return run

    def _record(self, strategy: FallbackStrategy, warning: str) -> None:
        self._fallbacks.append(strategy.value)
        self._warnings.append(warning)
        logger.info("Fallback {} applied: {}", strategy.value, warning)

    def _result(self, items: List[Item], working: AssemblyConfig, success: bool = True) -> FallbackResult:
        selected = items[: working.total_items]
        adjusted = working
        if self._difficulty_relaxed:
            adjusted = adjusted.model_copy(update={"difficulty_distribution": effective_difficulty(selected)})
        return FallbackResult(
            success=success,
            selected_items=selected,
            fallbacks_applied=list(self._fallbacks),
            warnings=list(self._warnings),
            adjusted_config=None if adjusted == self._requested else adjusted,
        )

    def run(self) -> FallbackResult:
        requested = self._requested
        working = requested

        direct = self._run(working, top_up=False)
        if direct.count() >= working.total_items:
            return FallbackResult(success=True, selected_items=direct.items[: working.total_items])
        latest = direct

        if direct.short_bands:
            relaxed = self._relax_difficulty(working, direct)
            latest = relaxed
            if relaxed.count() >= working.total_items:
                return self._result(relaxed.items, working)

        substituted_config = self._substitute_types(working)
        if substituted_config is not None:
            working = substituted_config
            latest = self._run(working, top_up=True)
            if latest.count() >= working.total_items:
                return self._result(latest.items, working)

        obtainable = latest.count()
        if 0 < obtainable < working.total_items:
            working = working.model_copy(
                update={
                    "total_items": obtainable,
                    "item_distribution": scale_distribution(
                        working.item_distribution, obtainable, latest.yielded()
                    ),
                }
            )
            self._record(
                FallbackStrategy.TOTAL_REDUCED,
                f"Total items reduced from {requested.total_items} to {obtainable}",
            )
            reduced = self._run(working, top_up=True)
            if reduced.count() >= working.total_items:
                return self._result(reduced.items, working)

        return self._emergency(working)

    def _relax_difficulty(self, config: AssemblyConfig, direct: SelectionRun) -> SelectionRun:
        relaxed = self._run(config, top_up=True)
        relaxed_types = [
            item_type
            for item_type in direct.short_bands
            if len(relaxed.by_type.get(item_type, [])) > len(direct.by_type.get(item_type, []))
        ]
        if relaxed_types:
            self._difficulty_relaxed = True
            details = ", ".join(
                f"{item_type} ({', '.join(band.value for band in direct.short_bands[item_type])})"
                for item_type in relaxed_types
            )
            self._record(
                FallbackStrategy.DIFFICULTY_RELAXED,
                f"Difficulty distribution was relaxed for {details} due to insufficient items",
            )
        return relaxed

    def _substitute_types(self, config: AssemblyConfig) -> Optional[AssemblyConfig]:
        supply = {item_type: len(type_candidates(self._snapshot, config, item_type)) for item_type in ITEM_TYPES}
        distribution = {item_type: count for item_type, count in config.item_distribution.items() if count > 0}
        moves: List[str] = []

        for item_type in config.requested_types():
            wanted = config.item_distribution[item_type]
            available = supply.get(item_type, 0)
            if available >= wanted:
                continue
            deficit = wanted - available
            distribution[item_type] = available
            for substitute in SUBSTITUTION_PREFERENCES.get(item_type, []):
                if deficit <= 0:
                    break
                # Any type with spare supply qualifies, requested or not.
                spare = supply.get(substitute, 0) - distribution.get(substitute, 0)
                moved = min(deficit, spare)
                if moved > 0:
                    distribution[substitute] = distribution.get(substitute, 0) + moved
                    deficit -= moved
                    moves.append(f"{item_type} -> {substitute} ({moved})")

        if not moves:
            return None
        self._record(
            FallbackStrategy.TYPES_SUBSTITUTED,
            "Item types substituted with similar types: " + ", ".join(moves),
        )
        return config.model_copy(
            update={
                "item_distribution": {
                    item_type: count for item_type, count in distribution.items() if count > 0
                }
            }
        )

    def _emergency(self, config: AssemblyConfig) -> FallbackResult:
        limit = self._engine.emergency_limit
        if self._requested.total_items > 0:
            limit = min(limit, self._requested.total_items)
        chosen = self._select(self._snapshot, limit, set())
        self._fallbacks.append(FallbackStrategy.EMERGENCY.value)
        self._warnings.append("Used emergency fallback - paper may not meet original specifications")
        logger.warning(
            "Emergency fallback returned {} of {} requested items", len(chosen), self._requested.total_items
        )
        adjusted = config.model_copy(
            update={
                "total_items": len(chosen),
                "item_distribution": dict(Counter(item.type for item in chosen)),
                "difficulty_distribution": effective_difficulty(chosen),
            }
        )
        return FallbackResult(
            success=bool(chosen),
            selected_items=chosen,
            fallbacks_applied=list(self._fallbacks),
            warnings=list(self._warnings),
            adjusted_config=adjusted,
        )


def assemble_with_fallback(
    snapshot: Sequence[Item],
    config: AssemblyConfig,
    rng: Optional[random.Random] = None,
    engine_config: Optional[EngineConfig] = None,
) -> FallbackResult:
    """Select items for ``config`` from ``snapshot``, relaxing constraints only as needed."""

    return FallbackCoordinator(snapshot, config, rng=rng, engine_config=engine_config).run()


def build_paper(
    config: AssemblyConfig,
    items: Sequence[Item],
    title: str,
    instructions: str = "",
    time_limit: Optional[int] = None,
) -> AssembledPaper:
    """Group selected items into numbered sections by type."""

    by_type: Dict[str, List[Item]] = {}
    for item in items:
        by_type.setdefault(item.type, []).append(item)

    sections: List[PaperSection] = []
    question_number = 1
    for item_type, section_items in by_type.items():
        paper_items: List[PaperItem] = []
        for item in section_items:
            options = item.options_json if item.type == "mcq" and isinstance(item.options_json, list) else None
            paper_items.append(
                PaperItem(
                    id=item.id,
                    question_number=question_number,
                    type=item.type,
                    stem=item.stem,
                    options=options,
                    answer_space=item.type != "mcq",
                    points=ITEM_POINTS.get(item.type, 2),
                )
            )
            question_number += 1
        sections.append(
            PaperSection(
                id=f"section_{item_type}",
                title=SECTION_TITLES.get(item_type, item_type),
                instructions=SECTION_INSTRUCTIONS.get(item_type),
                items=paper_items,
            )
        )

    return AssembledPaper(
        id=f"paper_{uuid4().hex}",
        title=title,
        instructions=instructions,
        time_limit=time_limit,
        level=config.level,
        total_points=sum(paper_item.points for section in sections for paper_item in section.items),
        sections=sections,
        created_at=datetime.now(timezone.utc),
    )


class InMemoryItemRepository(ItemRepository):
    """Dictionary-backed item bank for development and tests."""

    def __init__(self) -> None:
        self._items: Dict[str, Dict[str, Item]] = {}
        self._lock = threading.Lock()

    def add_items(self, owner_id: str, items: Iterable[Item]) -> List[Item]:
        stored = [item.model_copy(update={"owner_id": owner_id}) for item in items]
        with self._lock:
            bank = self._items.setdefault(owner_id, {})
            for item in stored:
                bank[item.id] = item
        return stored

    def get_item(self, owner_id: str, item_id: str) -> Item:
        try:
            return self._items[owner_id][item_id]
        except KeyError as exc:
            raise KeyError(f"Item {item_id} does not exist for owner {owner_id}") from exc

    def list_items(
        self, owner_id: str, level: Optional[str] = None, item_type: Optional[str] = None
    ) -> List[Item]:
        with self._lock:
            items = list(self._items.get(owner_id, {}).values())
        return [
            item
            for item in items
            if (level is None or item.level == level) and (item_type is None or item.type == item_type)
        ]

    def increment_usage(self, owner_id: str, item_ids: Iterable[str]) -> int:
        updated = 0
        with self._lock:
            bank = self._items.get(owner_id, {})
            for item_id in dict.fromkeys(item_ids):
                item = bank.get(item_id)
                if item is None:
                    continue
                bank[item_id] = item.model_copy(update={"usage_count": item.usage_count + 1})
                updated += 1
        return updated


class AssemblyService:
    """Facade tying the item bank to the assembly engine."""

    def __init__(self, repository: ItemRepository, engine_config: Optional[EngineConfig] = None) -> None:
        self._repository = repository
        self._engine_config = engine_config or EngineConfig()

    def add_items(self, owner_id: str, payloads: Sequence[ItemCreate]) -> ItemBatchResponse:
        """Store every valid item of a batch and report the rejected ones."""

        accepted, failed = partition_items(payloads, owner_id)
        stored = self._repository.add_items(owner_id, accepted) if accepted else []
        logger.info("Stored {} items for owner {}", len(stored), owner_id)
        if failed:
            logger.warning("Rejected {} of {} items for owner {}", len(failed), len(payloads), owner_id)
        return ItemBatchResponse(created=stored, failed=failed)

    def list_items(
        self, owner_id: str, level: Optional[str] = None, item_type: Optional[str] = None
    ) -> List[Item]:
        return self._repository.list_items(owner_id, level=level, item_type=item_type)

    def check_feasibility(self, owner_id: str, config: AssemblyConfig) -> FeasibilityReport:
        validate_assembly_config(config)
        METRICS.record_feasibility_check()
        snapshot = self._repository.snapshot(owner_id, config.level)
        return validate_feasibility(snapshot, config)

    def assemble(self, request: AssembleRequest) -> AssembleResponse:
        config = request.config
        validate_assembly_config(config)
        METRICS.record_assembly_attempt()

        snapshot = self._repository.snapshot(request.owner_id, config.level)
        seed = request.seed if request.seed is not None else uuid4().int
        result = assemble_with_fallback(
            snapshot, config, rng=random.Random(seed), engine_config=self._engine_config
        )
        METRICS.record_assembly_result(
            result.success, len(result.selected_items), config.total_items, result.fallbacks_applied
        )
        logger.info(
            "Assembled {}/{} items for owner {} (fallbacks: {})",
            len(result.selected_items),
            config.total_items,
            request.owner_id,
            ", ".join(result.fallbacks_applied) or "none",
        )

        if not result.success:
            raise InsufficientItemsError(
                f"No items available: found {len(result.selected_items)} matching items, "
                f"need {config.total_items}"
            )

        effective = result.adjusted_config or config
        paper = build_paper(
            effective,
            result.selected_items,
            title=request.title,
            instructions=request.instructions,
            time_limit=request.time_limit,
        )
        return AssembleResponse(paper=paper, result=result)

    def commit_paper(self, request: CommitPaperRequest) -> CommitPaperResponse:
        updated = self._repository.increment_usage(request.owner_id, request.item_ids)
        METRICS.record_commit(updated)
        logger.info("Committed {} items for owner {}", updated, request.owner_id)
        return CommitPaperResponse(updated=updated)


__all__ = [
    "AssemblyService",
    "EngineConfig",
    "FallbackCoordinator",
    "InMemoryItemRepository",
    "InsufficientItemsError",
    "SelectionRun",
    "assemble_with_fallback",
    "build_paper",
    "configure_logging",
    "scale_distribution",
    "select_bucket",
]
