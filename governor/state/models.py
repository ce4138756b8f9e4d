"""Pydantic models for the backlog state file.

All backlog state lives in state/backlog.yaml under the 'backlog' key.
Keys this engine does not know about are kept and written back unchanged.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from governor.config import ConfidenceLevel, EstimateScale, ItemStatus, RiskLevel


class BacklogEstimate(BaseModel):
    """Technical estimate produced during technical refinement."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    story_points: int = 0
    scale: EstimateScale = EstimateScale.FIBONACCI
    confidence: ConfidenceLevel = ConfidenceLevel.MEDIUM
    risk_level: RiskLevel | None = RiskLevel.MEDIUM
    complexity_drivers: list[str] = Field(default_factory=list)
    assumptions: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    non_goals: list[str] = Field(default_factory=list)
    notes: str = ""

    @field_validator("scale", "confidence", "risk_level", mode="before")
    @classmethod
    def _lowercase_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower().replace("-", "_")
        return value


class DeliverySpec(BaseModel):
    """Where the Deliver stage builds and runs the item's project.

    Paths are relative to the repository root.
    """

    model_config = ConfigDict(extra="allow")

    project_path: str | None = None
    executable_path: str | None = None


class BacklogItem(BaseModel):
    """A backlog item.

    Lifecycle: created by intake, moved forward one status at a time by the
    flow orchestrator, never deleted by this engine.
    """

    model_config = ConfigDict(extra="allow")

    id: int
    title: str = ""
    status: ItemStatus = ItemStatus.CANDIDATE
    priority: int = 0
    size: str = "S"
    owner: str = "PO"
    story: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)
    non_goals: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    risks: list[str] = Field(default_factory=list)
    estimate: BacklogEstimate | None = None
    delivery: DeliverySpec | None = None
    epic_id: str | None = None
    technical_notes_ref: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ItemStatus.parse(value)
        return value

    def with_status(self, status: ItemStatus) -> "BacklogItem":
        """Return a copy at a new status; the original is left untouched."""
        return self.model_copy(deep=True, update={"status": status})

    def snapshot(self) -> dict[str, Any]:
        """Plain JSON-compatible view of the item for reviewers."""
        return self.model_dump(mode="json", exclude_none=True)


class BacklogFile(BaseModel):
    """Root of state/backlog.yaml."""

    model_config = ConfigDict(extra="allow")

    backlog: list[BacklogItem] = Field(default_factory=list)

    @field_validator("backlog", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    def find(self, item_id: int) -> BacklogItem | None:
        return next((item for item in self.backlog if item.id == item_id), None)

    def next_id(self) -> int:
        return max((item.id for item in self.backlog), default=0) + 1
