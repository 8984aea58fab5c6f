from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import time
from typing import Literal

from mergelabel.classifier import classify
from mergelabel.config import AppConfig
from mergelabel.github_gateway import GitHubGateway, GitHubRequestError
from mergelabel.labels import LabelNotFoundError, resolve_conflict_label
from mergelabel.observability import log_event, log_warning_event
from mergelabel.poller import RetryPolicy, poll_until_resolved
from mergelabel.reconciler import ReconcileReport, reconcile


LOGGER = logging.getLogger("mergelabel.runner")

RunStage = Literal["resolve_label", "poll_mergeability", "classify", "reconcile", "done"]


@dataclass(frozen=True)
class RunOutcome:
    succeeded: bool
    stage: RunStage
    message: str
    attempts: int = 0
    unresolved_count: int = 0
    report: ReconcileReport | None = None


def run_conflict_labeling(
    config: AppConfig,
    github: GitHubGateway,
    *,
    sleep: Callable[[float], None] = time.sleep,
    dry_run: bool = False,
) -> RunOutcome:
    """Run one resolve, poll, classify, reconcile pass and report how it ended.

    Label lookup and fetch failures stop the run before any mutation. Failed
    label mutations do not stop sibling pull requests but fail the run.
    """
    label_name = config.repo.conflict_label
    log_event(
        LOGGER,
        "run_started",
        repo_full_name=config.repo.full_name,
        label_name=label_name,
        dry_run=dry_run,
    )

    try:
        label = resolve_conflict_label(github, label_name)
    except LabelNotFoundError as exc:
        return _finish(RunOutcome(succeeded=False, stage="resolve_label", message=str(exc)))
    except GitHubRequestError as exc:
        return _finish(
            RunOutcome(
                succeeded=False,
                stage="resolve_label",
                message=f"Fetching labels failed: {exc}",
            )
        )

    policy = RetryPolicy(
        max_attempts=config.polling.max_attempts,
        interval_seconds=config.polling.interval_seconds,
    )
    try:
        polled = poll_until_resolved(github.fetch_open_pull_requests, policy, sleep=sleep)
    except GitHubRequestError as exc:
        return _finish(
            RunOutcome(
                succeeded=False,
                stage="poll_mergeability",
                message=f"Fetching pull requests failed: {exc}",
            )
        )

    failures: list[str] = []
    if polled.unresolved_count:
        numbers = ", ".join(f"#{pr.number}" for pr in polled.unresolved)
        failures.append(
            f"Cannot determine mergeable status after {polled.attempts} attempts "
            f"for {numbers}"
        )
        if not config.polling.reconcile_on_timeout:
            return _finish(
                RunOutcome(
                    succeeded=False,
                    stage="poll_mergeability",
                    message=failures[0],
                    attempts=polled.attempts,
                    unresolved_count=polled.unresolved_count,
                )
            )

    classification = classify(polled.pull_requests).without_unknown()
    log_event(
        LOGGER,
        "pull_requests_classified",
        conflicted_count=len(classification.conflicted),
        resolved_count=len(classification.resolved),
        excluded_unknown_count=polled.unresolved_count,
    )

    report = reconcile(
        github,
        classification,
        label,
        max_workers=config.runtime.max_workers,
        dry_run=dry_run,
    )
    for result in report.failed:
        verb = "Labeling" if result.operation.action == "add" else "Unlabeling"
        failures.append(f"{verb} PR #{result.operation.pull_request.number} failed: {result.error}")

    if failures:
        outcome = RunOutcome(
            succeeded=False,
            stage="reconcile",
            message="; ".join(failures),
            attempts=polled.attempts,
            unresolved_count=polled.unresolved_count,
            report=report,
        )
    else:
        verb = "Planned" if dry_run else "Applied"
        outcome = RunOutcome(
            succeeded=True,
            stage="done",
            message=(
                f"{verb} {len(report.results)} label change(s) across "
                f"{len(polled.pull_requests)} open pull request(s)"
            ),
            attempts=polled.attempts,
            report=report,
        )
    return _finish(outcome)


def _finish(outcome: RunOutcome) -> RunOutcome:
    fields: dict[str, object] = {
        "succeeded": outcome.succeeded,
        "stage": outcome.stage,
        "attempts": outcome.attempts,
        "unresolved_count": outcome.unresolved_count,
        "message": outcome.message,
    }
    if outcome.report is not None:
        fields["applied_count"] = len(outcome.report.applied)
        fields["failed_count"] = len(outcome.report.failed)
    if outcome.succeeded:
        log_event(LOGGER, "run_finished", **fields)
    else:
        log_warning_event(LOGGER, "run_finished", **fields)
    return outcome
