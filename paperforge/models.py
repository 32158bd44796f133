"""Pydantic models for the paperforge assembly backend."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


ItemType = Literal["mcq", "cloze", "error_correction", "matching", "reading_q", "writing_task"]
CEFRLevel = Literal["A1", "A2", "B1", "B2", "C1", "C2"]
BandName = Literal["easy", "medium", "hard"]

ITEM_TYPES: List[str] = ["mcq", "cloze", "error_correction", "matching", "reading_q", "writing_task"]
CEFR_LEVELS: List[str] = ["A1", "A2", "B1", "B2", "C1", "C2"]


class Item(BaseModel):
    """Assessment item as handed to the engine. Never mutated during assembly."""

    model_config = ConfigDict(frozen=True)

    id: str
    type: ItemType
    level: CEFRLevel
    difficulty_score: float = Field(ge=0.0, le=1.0)
    tags: List[str] = Field(default_factory=list)
    usage_count: int = Field(default=0, ge=0)
    owner_id: Optional[str] = None
    stem: str = ""
    options_json: Optional[Any] = None
    answer_json: Optional[Any] = None
    explanation: Optional[str] = None
    source: Optional[str] = None
    correct_rate: Optional[float] = None


class DifficultyDistribution(BaseModel):
    easy: float = Field(default=0.0, ge=0.0, le=1.0)
    medium: float = Field(default=0.0, ge=0.0, le=1.0)
    hard: float = Field(default=0.0, ge=0.0, le=1.0)

    def total(self) -> float:
        return self.easy + self.medium + self.hard


class AssemblyConfig(BaseModel):
    """Requested paper configuration."""

    total_items: int = Field(ge=0)
    item_distribution: Dict[ItemType, int] = Field(default_factory=dict)
    difficulty_distribution: DifficultyDistribution = Field(default_factory=DifficultyDistribution)
    level: CEFRLevel
    topics: Optional[List[str]] = None
    tags: Optional[List[str]] = None

    @field_validator("item_distribution")
    @classmethod
    def validate_counts(cls, value: Dict[str, int]) -> Dict[str, int]:
        for item_type, count in value.items():
            if count < 0:
                raise ValueError(f"Requested count for {item_type} must not be negative")
        return value

    def requested_types(self) -> List[str]:
        return [item_type for item_type, count in self.item_distribution.items() if count > 0]


class FallbackResult(BaseModel):
    """Outcome of a single assembly call."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool
    selected_items: List[Item] = Field(default_factory=list, alias="selectedItems")
    fallbacks_applied: List[str] = Field(default_factory=list, alias="fallbacksApplied")
    warnings: List[str] = Field(default_factory=list)
    adjusted_config: Optional[AssemblyConfig] = Field(default=None, alias="adjustedConfig")


class FeasibilitySuggestion(BaseModel):
    type: str
    available: int
    required: int


class FeasibilityReport(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_valid: bool = Field(alias="isValid")
    issues: List[str] = Field(default_factory=list)
    suggestions: List[FeasibilitySuggestion] = Field(default_factory=list)


class ItemCreate(BaseModel):
    """Input body for a single item on /v1/items."""

    id: Optional[str] = None
    type: ItemType
    level: CEFRLevel
    stem: str
    # Clamped into [0, 1] on import; missing scores default to 0.5.
    difficulty_score: Optional[float] = None
    tags: List[str] = Field(default_factory=list)
    options_json: Optional[Any] = None
    answer_json: Optional[Any] = None
    explanation: Optional[str] = None
    source: Optional[str] = None


class ItemBatchRequest(BaseModel):
    owner_id: str
    items: List[ItemCreate]

    @model_validator(mode="after")
    def validate_batch(self) -> "ItemBatchRequest":
        if not self.items:
            raise ValueError("At least one item must be provided")
        return self


class ItemImportFailure(BaseModel):
    original: Dict[str, Any]
    error: str


class ItemBatchResponse(BaseModel):
    created: List[Item]
    failed: List[ItemImportFailure] = Field(default_factory=list)


class ItemListResponse(BaseModel):
    items: List[Item]
    total: int


class PaperItem(BaseModel):
    id: str
    question_number: int
    type: ItemType
    stem: str
    options: Optional[List[str]] = None
    answer_space: bool = False
    points: int


class PaperSection(BaseModel):
    id: str
    title: str
    instructions: Optional[str] = None
    items: List[PaperItem]


class AssembledPaper(BaseModel):
    """Structured paper built from a successful selection."""

    id: str
    title: str
    instructions: str = ""
    time_limit: Optional[int] = None
    level: CEFRLevel
    total_points: int
    sections: List[PaperSection]
    created_at: datetime


class ValidateRequest(BaseModel):
    owner_id: str
    config: AssemblyConfig


class AssembleRequest(BaseModel):
    """Input body for /v1/assess/assemble."""

    owner_id: str
    config: AssemblyConfig
    title: str = "Untitled paper"
    instructions: str = ""
    time_limit: Optional[int] = Field(default=None, ge=15, le=180)
    seed: Optional[int] = None


class AssembleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    paper: AssembledPaper
    result: FallbackResult


class CommitPaperRequest(BaseModel):
    owner_id: str
    item_ids: List[str]


class CommitPaperResponse(BaseModel):
    updated: int


__all__ = [
    "AssembleRequest",
    "AssembleResponse",
    "AssembledPaper",
    "AssemblyConfig",
    "BandName",
    "CEFRLevel",
    "CEFR_LEVELS",
    "CommitPaperRequest",
    "CommitPaperResponse",
    "DifficultyDistribution",
    "FallbackResult",
    "FeasibilityReport",
    "FeasibilitySuggestion",
    "ITEM_TYPES",
    "Item",
    "ItemBatchRequest",
    "ItemBatchResponse",
    "ItemCreate",
    "ItemImportFailure",
    "ItemListResponse",
    "ItemType",
    "PaperItem",
    "PaperSection",
    "ValidateRequest",
]
