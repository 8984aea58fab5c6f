from __future__ import annotations

from collections.abc import Iterable
import logging

from mergelabel.github_gateway import GitHubGateway
from mergelabel.models import Label
from mergelabel.observability import log_event


LOGGER = logging.getLogger("mergelabel.labels")


class LabelNotFoundError(RuntimeError):
    def __init__(self, name: str, repo_full_name: str) -> None:
        super().__init__(f'"{name}" label not found in {repo_full_name}')
        self.name = name
        self.repo_full_name = repo_full_name


def find_exact_label(candidates: Iterable[Label], name: str) -> Label | None:
    # Label search ranks fuzzy matches; only an exact name counts.
    for candidate in candidates:
        if candidate.name == name:
            return candidate
    return None


def resolve_conflict_label(github: GitHubGateway, name: str) -> Label:
    if not name:
        raise ValueError("label name must be non-empty")
    candidates = github.fetch_labels(name)
    label = find_exact_label(candidates, name)
    if label is None:
        log_event(
            LOGGER,
            "conflict_label_missing",
            label_name=name,
            candidate_count=len(candidates),
        )
        raise LabelNotFoundError(name, github.full_name)
    log_event(LOGGER, "conflict_label_resolved", label_name=name, label_id=label.node_id)
    return label
