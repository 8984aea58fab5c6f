from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from mergelabel.models import PullRequest


@dataclass(frozen=True)
class Classification:
    conflicted: tuple[PullRequest, ...]
    resolved: tuple[PullRequest, ...]
    unknown: tuple[PullRequest, ...]

    def without_unknown(self) -> Classification:
        return Classification(conflicted=self.conflicted, resolved=self.resolved, unknown=())


def classify(pull_requests: Iterable[PullRequest]) -> Classification:
    conflicted: list[PullRequest] = []
    resolved: list[PullRequest] = []
    unknown: list[PullRequest] = []
    for pull_request in pull_requests:
        if pull_request.mergeability == "conflicting":
            conflicted.append(pull_request)
        elif pull_request.mergeability == "mergeable":
            resolved.append(pull_request)
        else:
            unknown.append(pull_request)
    return Classification(
        conflicted=tuple(conflicted),
        resolved=tuple(resolved),
        unknown=tuple(unknown),
    )
