from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
import logging

from mergelabel.classifier import Classification
from mergelabel.github_gateway import GitHubGateway
from mergelabel.models import Label, LabelOperation, LabelOperationResult
from mergelabel.observability import log_event, log_warning_event


LOGGER = logging.getLogger("mergelabel.reconciler")


@dataclass(frozen=True)
class ReconcileReport:
    results: tuple[LabelOperationResult, ...]
    dry_run: bool = False

    @property
    def applied(self) -> tuple[LabelOperationResult, ...]:
        return tuple(result for result in self.results if result.succeeded)

    @property
    def failed(self) -> tuple[LabelOperationResult, ...]:
        return tuple(result for result in self.results if not result.succeeded)

    @property
    def succeeded(self) -> bool:
        return not self.failed


def plan_label_operations(
    classification: Classification, label: Label
) -> tuple[LabelOperation, ...]:
    """Operations needed to converge label presence with mergeability.

    Unknown pull requests never get an operation.
    """
    operations: list[LabelOperation] = []

    if not classification.conflicted:
        log_event(LOGGER, "no_conflicting_pull_requests")
    for pull_request in classification.conflicted:
        if pull_request.has_label(label):
            log_event(
                LOGGER,
                "pr_label_skipped",
                pr_number=pull_request.number,
                reason="already_labeled",
            )
            continue
        operations.append(LabelOperation(action="add", pull_request=pull_request))

    if not classification.resolved:
        log_event(LOGGER, "no_mergeable_pull_requests")
    for pull_request in classification.resolved:
        if not pull_request.has_label(label):
            log_event(
                LOGGER,
                "pr_unlabel_skipped",
                pr_number=pull_request.number,
                reason="not_labeled",
            )
            continue
        operations.append(LabelOperation(action="remove", pull_request=pull_request))

    return tuple(operations)


def apply_label_operations(
    github: GitHubGateway,
    label: Label,
    operations: tuple[LabelOperation, ...],
    *,
    max_workers: int,
) -> ReconcileReport:
    if not operations:
        return ReconcileReport(results=())

    with ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(operations))),
        thread_name_prefix="mergelabel-label",
    ) as pool:
        futures: list[tuple[LabelOperation, Future[None]]] = [
            (operation, pool.submit(_apply_one, github, label, operation))
            for operation in operations
        ]
        results = tuple(_collect(operation, future) for operation, future in futures)
    return ReconcileReport(results=results)


def reconcile(
    github: GitHubGateway,
    classification: Classification,
    label: Label,
    *,
    max_workers: int,
    dry_run: bool = False,
) -> ReconcileReport:
    operations = plan_label_operations(classification, label)
    if dry_run:
        for operation in operations:
            log_event(
                LOGGER,
                "pr_operation_planned",
                action=operation.action,
                pr_number=operation.pull_request.number,
            )
        return ReconcileReport(
            results=tuple(LabelOperationResult(operation=operation) for operation in operations),
            dry_run=True,
        )
    return apply_label_operations(github, label, operations, max_workers=max_workers)


def _apply_one(github: GitHubGateway, label: Label, operation: LabelOperation) -> None:
    pull_request = operation.pull_request
    if operation.action == "add":
        log_event(LOGGER, "pr_labeling", pr_number=pull_request.number)
        github.add_label(pull_request.node_id, label.node_id)
        log_event(LOGGER, "pr_labeled", pr_number=pull_request.number)
    else:
        log_event(LOGGER, "pr_unlabeling", pr_number=pull_request.number)
        github.remove_label(pull_request.node_id, label.node_id)
        log_event(LOGGER, "pr_unlabeled", pr_number=pull_request.number)


def _collect(operation: LabelOperation, future: Future[None]) -> LabelOperationResult:
    try:
        future.result()
    except Exception as exc:  # noqa: BLE001
        log_warning_event(
            LOGGER,
            "pr_label_failed" if operation.action == "add" else "pr_unlabel_failed",
            pr_number=operation.pull_request.number,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return LabelOperationResult(operation=operation, error=f"{type(exc).__name__}: {exc}")
    return LabelOperationResult(operation=operation)
