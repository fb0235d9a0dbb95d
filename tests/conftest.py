"""Shared test fixtures."""

import random
from collections.abc import Callable

import pytest

from autotriage.engine import DecisionEngine
from autotriage.models import IssueClassification, IssueState, Policy, TelemetryEvent, Verdict
from autotriage.roster import RosterProvider, RosterSnapshot
from autotriage.telemetry import TelemetrySink
from autotriage.trackers.base import IssueTracker

MUTATIONS = {"create_label", "add_label", "add_assignee", "post_comment"}


class FakeTracker(IssueTracker):
    """In-memory tracker recording every call in order."""

    repository = "octo/repo"

    def __init__(
        self,
        issues: dict[int, IssueState] | None = None,
        assigned: dict[int, set[str]] | None = None,
        labels: set[str] | None = None,
        config: str = "{}",
    ) -> None:
        self.issues = issues or {}
        self.assigned = assigned or {}
        self.labels = labels or set()
        self.config = config
        self.calls: list[tuple] = []
        self.failures: dict[str, Exception] = {}
        # (method, issue number) -> error, for failures on a single issue
        self.issue_failures: dict[tuple[str, int], Exception] = {}

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]
        if args and (name, args[0]) in self.issue_failures:
            raise self.issue_failures[(name, args[0])]

    @property
    def mutations(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in MUTATIONS]

    def calls_named(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def get_issue(self, number: int) -> IssueState:
        self._record("get_issue", number)
        return self.issues.get(number, IssueState(number=number))

    async def repo_has_label(self, name: str) -> bool:
        self._record("repo_has_label", name)
        return name in self.labels

    async def create_label(self, name: str, color: str, description: str = "") -> None:
        self._record("create_label", name, color)
        self.labels.add(name)

    async def add_label(self, number: int, name: str) -> None:
        self._record("add_label", number, name)

    async def add_assignee(self, number: int, login: str) -> None:
        self._record("add_assignee", number, login)

    async def post_comment(self, number: int, body: str) -> None:
        self._record("post_comment", number, body)

    async def get_assigner(self, number: int, login: str) -> str | None:
        self._record("get_assigner", number, login)
        return "triage-bot" if login in self.assigned.get(number, set()) else None

    async def read_config(self, path: str) -> str:
        self._record("read_config", path)
        return self.config


class StaticRoster(RosterProvider):
    def __init__(self, identities: set[str] | None) -> None:
        self.identities = identities
        self.fetches = 0

    async def fetch_eligible_identities(self) -> frozenset[str] | None:
        self.fetches += 1
        return None if self.identities is None else frozenset(self.identities)


class RecordingSink(TelemetrySink):
    def __init__(self) -> None:
        self.events: list[TelemetryEvent] = []

    async def track(self, event: TelemetryEvent) -> None:
        self.events.append(event)


def classification(
    number: int,
    area: str = "bug",
    area_confident: bool = True,
    assignee: str = "alice",
    assignee_confident: bool = False,
) -> IssueClassification:
    return IssueClassification(
        number=number,
        area=Verdict(category=area, confidence=0.9 if area_confident else 0.3, confident=area_confident),
        assignee=Verdict(category=assignee, confidence=0.8 if assignee_confident else 0.2, confident=assignee_confident),
    )


@pytest.fixture
def tracker() -> FakeTracker:
    return FakeTracker()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def policy() -> Policy:
    return Policy.model_validate(
        {
            "vacation": ["alice"],
            "labels": {"bug": {"assign": ["alice", "bob"]}, "docs": {"accuracy": 0.7}},
            "assignees": {"bob": {"accuracy": 0.5}},
        }
    )


@pytest.fixture
def make_engine(tracker: FakeTracker, sink: RecordingSink, policy: Policy) -> Callable[..., DecisionEngine]:
    """Build an engine; must be called from inside a running event loop."""

    def _make(
        roster: RosterProvider | None = None,
        *,
        diagnostic: bool = False,
        allow_labels: tuple[str, ...] = (),
        seed: int = 0,
        engine_policy: Policy | None = None,
    ) -> DecisionEngine:
        return DecisionEngine(
            tracker,
            engine_policy or policy,
            RosterSnapshot(roster or StaticRoster(None)),
            sink,
            allow_labels=allow_labels,
            diagnostic=diagnostic,
            rng=random.Random(seed),
        )

    return _make
