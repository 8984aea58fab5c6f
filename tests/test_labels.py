from __future__ import annotations

import pytest

from mergelabel.labels import LabelNotFoundError, find_exact_label, resolve_conflict_label
from mergelabel.models import Label


class FakeLabelSource:
    full_name = "octo/widgets"

    def __init__(self, labels: list[Label]) -> None:
        self.labels = labels
        self.queries: list[str] = []

    def fetch_labels(self, query: str) -> list[Label]:
        self.queries.append(query)
        return self.labels


def test_find_exact_label_ignores_fuzzy_matches() -> None:
    fuzzy_first = [
        Label(node_id="L2", name="has-conflicts-old"),
        Label(node_id="L1", name="has conflicts"),
    ]
    assert find_exact_label(fuzzy_first, "has conflicts") == Label(
        node_id="L1", name="has conflicts"
    )
    assert find_exact_label(fuzzy_first, "Has Conflicts") is None
    assert find_exact_label([], "has conflicts") is None


def test_resolve_conflict_label_returns_exact_match() -> None:
    source = FakeLabelSource(
        [
            Label(node_id="L1", name="has conflicts"),
            Label(node_id="L2", name="has-conflicts-old"),
        ]
    )

    label = resolve_conflict_label(source, "has conflicts")

    assert label.node_id == "L1"
    assert source.queries == ["has conflicts"]


def test_resolve_conflict_label_raises_when_only_fuzzy_matches() -> None:
    source = FakeLabelSource([Label(node_id="L2", name="has-conflicts-old")])

    with pytest.raises(LabelNotFoundError, match='"has conflicts" label not found in octo/widgets'):
        resolve_conflict_label(source, "has conflicts")


def test_resolve_conflict_label_rejects_empty_name() -> None:
    source = FakeLabelSource([])

    with pytest.raises(ValueError, match="non-empty"):
        resolve_conflict_label(source, "")
    assert source.queries == []
