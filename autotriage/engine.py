"""Decision engine: turns classification verdicts into labels and assignments."""

import asyncio
import logging
import random
from collections.abc import Iterable
from dataclasses import dataclass, field

import httpx

from autotriage.models import (
    ActionSet,
    AssignmentStatus,
    IssueClassification,
    IssueState,
    Outcome,
    Policy,
    TelemetryEvent,
    Verdict,
)
from autotriage.roster import RosterSnapshot
from autotriage.telemetry import TelemetrySink
from autotriage.trackers.base import IssueTracker

log = logging.getLogger(__name__)

AREA_LABEL_COLOR = "f1d9ff"
ASSIGNEE_LABEL_COLOR = "ffa5a1"
TRIAGE_NEEDED_LABEL = "triage-needed"
CLASSIFICATION_EVENT = "classification:performed"

# Everything the tracker can raise for a single call.
TrackerError = (httpx.HTTPError, RuntimeError)


@dataclass(frozen=True)
class _Dimension:
    kind: str  # "label" | "assignee", also the telemetry property name
    color: str


AREA = _Dimension("label", AREA_LABEL_COLOR)
ASSIGNEE = _Dimension("assignee", ASSIGNEE_LABEL_COLOR)


@dataclass
class _IssueRun:
    """Mutable per-issue record, owned by a single process() call."""

    number: int
    candidates: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)
    comments: list[str] = field(default_factory=list)
    events: list[TelemetryEvent] = field(default_factory=list)

    def finish(self, outcome: Outcome, assignee: str | None = None, error: str | None = None) -> ActionSet:
        return ActionSet(
            number=self.number,
            outcome=outcome,
            candidates=self.candidates,
            assignee=assignee,
            labels=self.labels,
            comments=self.comments,
            events=self.events,
            error=error,
        )


def skip_reason(
    classification: IssueClassification,
    state: IssueState,
    allow_labels: frozenset[str],
    diagnostic: bool = False,
) -> str | None:
    """Return why the issue must be left alone, or None to triage it."""
    if state.number != classification.number:
        return f"issue {classification.number} moved to {state.number}"
    if diagnostic:
        return None
    if state.assignee:
        return f"already assigned to {state.assignee}"
    foreign = sorted(state.labels - allow_labels)
    if foreign:
        return f"already labeled {', '.join(foreign)}"
    return None


def _format_confidence(value: float) -> str:
    # whole numbers print without a trailing .0
    return str(int(value)) if value.is_integer() else repr(value)


def diagnostic_comment(dimension: str, verdict: Verdict) -> str:
    meets = "does" if verdict.confident else "does not"
    confidence = _format_confidence(verdict.confidence)
    return f"confidence for {dimension} {verdict.category}: {confidence}. {meets} meet threshold"


class DecisionEngine:
    """Processes a classification batch one issue at a time.

    Every side effect goes through the tracker and telemetry sink passed in,
    so the engine itself holds no network state. A failure while handling one
    issue is logged and recorded on that issue's ActionSet; it never stops the
    batch.
    """

    def __init__(
        self,
        tracker: IssueTracker,
        policy: Policy,
        roster: RosterSnapshot,
        telemetry: TelemetrySink,
        *,
        allow_labels: Iterable[str] = (),
        diagnostic: bool = False,
        rng: random.Random | None = None,
    ) -> None:
        self._tracker = tracker
        self._policy = policy
        self._roster = roster
        self._telemetry = telemetry
        self._allow_labels = frozenset(allow_labels)
        self._diagnostic = diagnostic
        self._rng = rng or random.Random()
        self._known_labels: set[str] = set()
        self._label_lock = asyncio.Lock()
        self._processed: set[int] = set()

    async def run(self, batch: Iterable[IssueClassification]) -> list[ActionSet]:
        results = []
        for classification in batch:
            results.append(await self.process(classification))
        return results

    async def process(self, classification: IssueClassification) -> ActionSet:
        """Triage one batch entry; never raises for a failure on that issue."""
        run = _IssueRun(number=classification.number)
        try:
            return await self._process(classification, run)
        except Exception as exc:
            log.exception("unexpected error triaging issue %d", classification.number)
            return run.finish(Outcome.UNASSIGNED, error=f"{type(exc).__name__}: {exc}")

    async def _process(self, classification: IssueClassification, run: _IssueRun) -> ActionSet:
        number = classification.number
        try:
            state = await self._tracker.get_issue(number)
        except TrackerError as exc:
            log.warning("could not fetch issue %d: %s", number, exc)
            return run.finish(Outcome.UNASSIGNED, error=str(exc))

        reason = skip_reason(classification, state, self._allow_labels, self._diagnostic)
        if reason is None and state.number in self._processed:
            reason = f"issue {state.number} already processed in this run"
        if reason:
            log.info("skipping %d: %s", number, reason)
            return ActionSet(number=number, outcome=Outcome.SKIPPED, skip_reason=reason)

        self._processed.add(state.number)
        log.info(
            "not skipping %d: area=%s assignee=%s",
            number,
            classification.area.model_dump(),
            classification.assignee.model_dump(),
        )

        run.number = state.number
        try:
            # both verdicts settle before either failure is raised
            results = await asyncio.gather(
                self._apply_verdict(
                    run, classification.area, AREA, self._policy.candidates_for(classification.area.category)
                ),
                self._apply_verdict(run, classification.assignee, ASSIGNEE, [classification.assignee.category]),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            area, assignee = results
            for candidate in area + assignee:
                if candidate not in run.candidates:
                    run.candidates.append(candidate)

            chosen = await self._assign_direct(run)
            if chosen:
                return run.finish(Outcome.DIRECT_ASSIGNED, chosen)
        except TrackerError as exc:
            log.warning("error triaging issue %d: %s", number, exc)
            return run.finish(Outcome.UNASSIGNED, error=str(exc))

        chosen = await self._assign_fallback(run)
        if chosen:
            return run.finish(Outcome.FALLBACK_ASSIGNED, chosen)
        return run.finish(Outcome.UNASSIGNED)

    async def _apply_verdict(
        self, run: _IssueRun, verdict: Verdict, dimension: _Dimension, candidates: list[str]
    ) -> list[str]:
        """Act on one verdict and return the assignment candidates it contributes."""
        if self._diagnostic:
            if verdict.confident:
                await self._ensure_label(verdict.category, dimension.color)
                await self._tracker.add_label(run.number, verdict.category)
                run.labels.append(verdict.category)
            comment = diagnostic_comment(dimension.kind, verdict)
            await self._tracker.post_comment(run.number, comment)
            run.comments.append(comment)
            return []

        if not verdict.confident:
            return []

        # The area label itself is only attached in diagnostic mode; here the
        # verdict contributes its configured assignees and telemetry.
        log.info("applying %s %s to issue %d", dimension.kind, verdict.category, run.number)
        event = TelemetryEvent(
            name=CLASSIFICATION_EVENT,
            issue=run.number,
            repository=self._tracker.repository,
            properties={dimension.kind: verdict.category},
        )
        await self._telemetry.track(event)
        run.events.append(event)
        return self._without_vacationers(candidates)

    def _without_vacationers(self, candidates: list[str]) -> list[str]:
        kept = []
        for candidate in candidates:
            if candidate in self._policy.vacation:
                log.info("not assigning %s because they are on vacation", candidate)
            else:
                kept.append(candidate)
        return kept

    async def _ensure_label(self, name: str, color: str) -> None:
        async with self._label_lock:
            if name in self._known_labels:
                return
            if not await self._tracker.repo_has_label(name):
                log.info("creating label %s", name)
                await self._tracker.create_label(name, color, "")
            self._known_labels.add(name)

    async def _assignment_status(self, number: int, login: str) -> AssignmentStatus:
        try:
            assigner = await self._tracker.get_assigner(number, login)
        except Exception as exc:
            log.debug("assignment lookup for %s on %d failed: %s", login, number, exc)
            return AssignmentStatus.LOOKUP_FAILED
        return AssignmentStatus.ASSIGNED if assigner else AssignmentStatus.NOT_ASSIGNED

    async def _assign_direct(self, run: _IssueRun) -> str | None:
        if self._diagnostic or not run.candidates:
            return None
        for candidate in run.candidates:
            status = await self._assignment_status(run.number, candidate)
            if status is AssignmentStatus.ASSIGNED:
                log.info("%s was assigned to %d before, trying next candidate", candidate, run.number)
                continue
            if status is AssignmentStatus.LOOKUP_FAILED:
                log.info("treating %s as never assigned to %d", candidate, run.number)
            await self._tracker.add_assignee(run.number, candidate)
            log.info("assigned %s to %d", candidate, run.number)
            return candidate
        return None

    async def _assign_fallback(self, run: _IssueRun) -> str | None:
        log.info("could not find assignee for %d, picking a random one", run.number)
        try:
            available = await self._roster.get()
            if available is None:
                log.info("roster unavailable, leaving %d unassigned", run.number)
                return None
            pool = sorted(available - self._policy.vacation)
            if not pool:
                log.info("roster has no eligible triagers, leaving %d unassigned", run.number)
                return None
            selection = self._rng.choice(pool)
            log.info("assigning %s to %d", selection, run.number)
            if self._diagnostic:
                return None
            await self._tracker.add_label(run.number, TRIAGE_NEEDED_LABEL)
            run.labels.append(TRIAGE_NEEDED_LABEL)
            await self._tracker.add_assignee(run.number, selection)
            return selection
        except TrackerError as exc:
            log.warning("error assigning random triager to %d: %s", run.number, exc)
            return None
