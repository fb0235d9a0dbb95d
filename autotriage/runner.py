"""Wires settings, inputs and collaborators together for one triage run."""

import contextlib
import logging
import random

import httpx

from autotriage.batch import load_batch
from autotriage.engine import DecisionEngine
from autotriage.models import ActionSet
from autotriage.policy import load_policy
from autotriage.roster import RosterSnapshot, open_roster
from autotriage.settings import TriageSettings
from autotriage.telemetry import HttpTelemetrySink, LoggingTelemetrySink, TelemetrySink
from autotriage.trackers.base import IssueTracker
from autotriage.trackers.github import GitHubTracker

log = logging.getLogger(__name__)


async def run_batch(
    settings: TriageSettings,
    tracker: IssueTracker | None = None,
    rng: random.Random | None = None,
) -> list[ActionSet]:
    """Apply every classification in settings.labels_file.

    Errors loading the batch or the policy propagate before any issue is
    touched; everything after that is handled per issue by the engine.
    """
    batch = load_batch(settings.labels_file)

    async with contextlib.AsyncExitStack() as stack:
        if tracker is None:
            tracker = await stack.enter_async_context(GitHubTracker(settings))
        policy = await load_policy(settings, tracker)

        telemetry: TelemetrySink = LoggingTelemetrySink()
        if settings.telemetry_url:
            client = await stack.enter_async_context(httpx.AsyncClient(timeout=10))
            telemetry = HttpTelemetrySink(settings.telemetry_url, client)

        roster = await stack.enter_async_context(open_roster(settings))
        snapshot = RosterSnapshot(roster)
        stack.push_async_callback(snapshot.aclose)

        engine = DecisionEngine(
            tracker,
            policy,
            snapshot,
            telemetry,
            allow_labels=settings.allowed_labels,
            diagnostic=settings.diagnostic,
            rng=rng,
        )
        if settings.diagnostic:
            log.info("diagnostic mode: posting confidence comments, no assignments")
        results = await engine.run(batch)

    log.info(
        "processed %d issue(s): %d assigned, %d skipped",
        len(results),
        sum(1 for r in results if r.assignee),
        sum(1 for r in results if r.skip_reason),
    )
    return results
