from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
import time

from mergelabel.classifier import classify
from mergelabel.models import PullRequest
from mergelabel.observability import log_event, log_warning_event


LOGGER = logging.getLogger("mergelabel.poller")


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-interval retry with a hard attempt cap.

    The defaults bound the total wait near an hour, which covers GitHub's usual
    delay in computing mergeability after a push to a base branch.
    """

    max_attempts: int = 60
    interval_seconds: float = 60.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")

    def should_retry(self, attempts: int, unresolved_count: int) -> bool:
        return unresolved_count > 0 and attempts < self.max_attempts


@dataclass(frozen=True)
class PollResult:
    pull_requests: tuple[PullRequest, ...]
    attempts: int
    unresolved: tuple[PullRequest, ...]

    @property
    def unresolved_count(self) -> int:
        return len(self.unresolved)


def poll_until_resolved(
    fetch: Callable[[], list[PullRequest]],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Fetch open pull requests until none report unknown mergeability.

    Every attempt replaces the previous snapshot wholesale. Errors raised by
    ``fetch`` propagate unchanged; only unknown mergeability is retried.
    """
    attempts = 0
    while True:
        attempts += 1
        pull_requests = tuple(fetch())
        unresolved = classify(pull_requests).unknown
        log_event(
            LOGGER,
            "poll_attempt",
            attempt=attempts,
            max_attempts=policy.max_attempts,
            pull_request_count=len(pull_requests),
            unresolved_count=len(unresolved),
        )
        if not policy.should_retry(attempts, len(unresolved)):
            break
        log_event(
            LOGGER,
            "poll_waiting",
            attempt=attempts,
            interval_seconds=policy.interval_seconds,
            unresolved_numbers=",".join(str(pr.number) for pr in unresolved),
        )
        sleep(policy.interval_seconds)

    if unresolved:
        log_warning_event(
            LOGGER,
            "poll_budget_exhausted",
            attempts=attempts,
            unresolved_count=len(unresolved),
        )
    return PollResult(pull_requests=pull_requests, attempts=attempts, unresolved=unresolved)
