from __future__ import annotations

from dataclasses import dataclass
from typing import Literal


Mergeability = Literal["conflicting", "mergeable", "unknown"]
LabelAction = Literal["add", "remove"]


@dataclass(frozen=True)
class Label:
    node_id: str
    name: str


@dataclass(frozen=True)
class PullRequest:
    """Open pull request as seen by a single fetch.

    ``labels`` is the label set at fetch time; it is never updated locally after
    the conflict label is added or removed upstream.
    """

    node_id: str
    number: int
    mergeability: Mergeability
    labels: tuple[Label, ...]

    def has_label(self, label: Label) -> bool:
        return any(applied.node_id == label.node_id for applied in self.labels)


@dataclass(frozen=True)
class LabelOperation:
    action: LabelAction
    pull_request: PullRequest


@dataclass(frozen=True)
class LabelOperationResult:
    operation: LabelOperation
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None
