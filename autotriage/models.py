"""Shared pydantic models, the contract between the batch, the tracker and the engine."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Verdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    confidence: float = Field(ge=0, le=1)  # informational only
    confident: bool  # precomputed threshold decision


class IssueClassification(BaseModel):
    model_config = ConfigDict(frozen=True)

    number: int
    area: Verdict
    assignee: Verdict


class LabelRule(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    accuracy: float | None = None
    assign: list[str] = []


class AssigneeRule(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    accuracy: float | None = None


class Policy(BaseModel):
    """Triage policy document, immutable for the run."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    vacation: frozenset[str] = frozenset()
    labels: dict[str, LabelRule] = {}
    assignees: dict[str, AssigneeRule] = {}

    def candidates_for(self, category: str) -> list[str]:
        rule = self.labels.get(category)
        return list(rule.assign) if rule else []


class IssueState(BaseModel):
    """Live issue state as the tracker reports it right now."""

    model_config = ConfigDict(frozen=True)

    number: int
    assignee: str | None = None
    labels: frozenset[str] = frozenset()


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    NOT_ASSIGNED = "not-assigned"
    LOOKUP_FAILED = "lookup-failed"


class Outcome(str, Enum):
    SKIPPED = "skipped"
    DIRECT_ASSIGNED = "direct-assigned"
    FALLBACK_ASSIGNED = "fallback-assigned"
    UNASSIGNED = "unassigned"


class TelemetryEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    issue: int
    repository: str | None = None
    properties: dict[str, str] = {}


class ActionSet(BaseModel):
    """Everything the engine did (or decided not to do) for one batch entry."""

    model_config = ConfigDict(frozen=True)

    number: int
    outcome: Outcome
    skip_reason: str | None = None
    candidates: list[str] = []
    assignee: str | None = None
    labels: list[str] = []
    comments: list[str] = []
    events: list[TelemetryEvent] = []
    error: str | None = None
