from __future__ import annotations

import threading

import pytest

from mergelabel.config import AppConfig, PollingConfig, RepoConfig, RuntimeConfig
from mergelabel.github_gateway import GitHubGateway, GitHubRequestError
from mergelabel.models import Label, Mergeability, PullRequest
from mergelabel.runner import run_conflict_labeling


CONFLICT = Label(node_id="L_conflict", name="has conflicts")


def _config(
    *, max_attempts: int = 3, reconcile_on_timeout: bool = True, label: str = "has conflicts"
) -> AppConfig:
    return AppConfig(
        repo=RepoConfig(owner="octo", name="widgets", conflict_label=label),
        github_token="tok",
        polling=PollingConfig(
            max_attempts=max_attempts,
            interval_seconds=5,
            reconcile_on_timeout=reconcile_on_timeout,
        ),
        runtime=RuntimeConfig(max_workers=2),
    )


def _pr(
    number: int, mergeability: Mergeability, labels: tuple[Label, ...] = ()
) -> PullRequest:
    return PullRequest(
        node_id=f"PR_{number}", number=number, mergeability=mergeability, labels=labels
    )


class FakeGitHub:
    full_name = "octo/widgets"

    def __init__(
        self,
        snapshots: list[list[PullRequest]],
        *,
        labels: list[Label] | None = None,
        label_error: Exception | None = None,
        fetch_error: Exception | None = None,
        failing_ids: frozenset[str] = frozenset(),
    ) -> None:
        self.snapshots = snapshots
        self.labels = [CONFLICT] if labels is None else labels
        self.label_error = label_error
        self.fetch_error = fetch_error
        self.failing_ids = failing_ids
        self.fetch_count = 0
        self.added: list[str] = []
        self.removed: list[str] = []
        self._lock = threading.Lock()

    def fetch_labels(self, query: str) -> list[Label]:
        _ = query
        if self.label_error is not None:
            raise self.label_error
        return self.labels

    def fetch_open_pull_requests(self) -> list[PullRequest]:
        if self.fetch_error is not None:
            raise self.fetch_error
        snapshot = self.snapshots[min(self.fetch_count, len(self.snapshots) - 1)]
        self.fetch_count += 1
        return snapshot

    def add_label(self, pull_request_id: str, label_id: str) -> None:
        assert label_id == CONFLICT.node_id
        if pull_request_id in self.failing_ids:
            raise GitHubRequestError("boom")
        with self._lock:
            self.added.append(pull_request_id)

    def remove_label(self, pull_request_id: str, label_id: str) -> None:
        assert label_id == CONFLICT.node_id
        if pull_request_id in self.failing_ids:
            raise GitHubRequestError("boom")
        with self._lock:
            self.removed.append(pull_request_id)


def test_run_reconciles_end_to_end() -> None:
    github = FakeGitHub(
        [
            [
                _pr(1, "conflicting"),
                _pr(2, "mergeable", (CONFLICT,)),
                _pr(3, "conflicting", (CONFLICT,)),
            ]
        ]
    )
    sleeps: list[float] = []

    outcome = run_conflict_labeling(_config(), github, sleep=sleeps.append)

    assert outcome.succeeded
    assert outcome.stage == "done"
    assert outcome.attempts == 1
    assert github.added == ["PR_1"]
    assert github.removed == ["PR_2"]
    assert sleeps == []
    assert outcome.message == "Applied 2 label change(s) across 3 open pull request(s)"


def test_run_waits_for_unknown_mergeability_then_reconciles() -> None:
    pending = [_pr(1, "unknown")]
    github = FakeGitHub([pending, pending, [_pr(1, "conflicting")]])
    sleeps: list[float] = []

    outcome = run_conflict_labeling(_config(max_attempts=5), github, sleep=sleeps.append)

    assert outcome.succeeded
    assert outcome.attempts == 3
    assert sleeps == [5, 5]
    assert github.added == ["PR_1"]


def test_run_fails_before_any_mutation_when_label_missing() -> None:
    github = FakeGitHub(
        [[_pr(1, "conflicting")]],
        labels=[Label(node_id="L_old", name="has-conflicts-old")],
    )

    outcome = run_conflict_labeling(_config(), github, sleep=lambda _: None)

    assert not outcome.succeeded
    assert outcome.stage == "resolve_label"
    assert '"has conflicts" label not found' in outcome.message
    assert github.fetch_count == 0
    assert github.added == []


def test_run_fails_when_label_fetch_errors() -> None:
    github = FakeGitHub([[]], label_error=GitHubRequestError("rate limited"))

    outcome = run_conflict_labeling(_config(), github, sleep=lambda _: None)

    assert not outcome.succeeded
    assert outcome.stage == "resolve_label"
    assert outcome.message == "Fetching labels failed: rate limited"


def test_run_fails_cleanly_when_gh_is_not_installed(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PATH", "/nonexistent")

    outcome = run_conflict_labeling(
        _config(), GitHubGateway("octo", "widgets", token="tok"), sleep=lambda _: None
    )

    assert outcome.succeeded is False
    assert outcome.stage == "resolve_label"
    assert outcome.message.startswith("Fetching labels failed: ")
    assert "could not be started" in outcome.message


def test_run_fails_on_pull_request_fetch_error() -> None:
    github = FakeGitHub([[]], fetch_error=GitHubRequestError("HTTP 502"))

    outcome = run_conflict_labeling(_config(), github, sleep=lambda _: None)

    assert not outcome.succeeded
    assert outcome.stage == "poll_mergeability"
    assert outcome.message == "Fetching pull requests failed: HTTP 502"
    assert outcome.report is None


def test_run_timeout_reconciles_known_pull_requests_but_fails() -> None:
    github = FakeGitHub(
        [[_pr(1, "unknown", (CONFLICT,)), _pr(2, "conflicting"), _pr(3, "mergeable", (CONFLICT,))]]
    )
    sleeps: list[float] = []

    outcome = run_conflict_labeling(_config(max_attempts=3), github, sleep=sleeps.append)

    assert not outcome.succeeded
    assert outcome.stage == "reconcile"
    assert outcome.attempts == 3
    assert outcome.unresolved_count == 1
    assert "Cannot determine mergeable status after 3 attempts for #1" in outcome.message
    assert len(sleeps) == 2
    assert github.added == ["PR_2"]
    assert github.removed == ["PR_3"]


def test_run_timeout_can_short_circuit_reconciliation() -> None:
    github = FakeGitHub([[_pr(1, "unknown"), _pr(2, "conflicting")]])

    outcome = run_conflict_labeling(
        _config(max_attempts=2, reconcile_on_timeout=False), github, sleep=lambda _: None
    )

    assert not outcome.succeeded
    assert outcome.stage == "poll_mergeability"
    assert outcome.unresolved_count == 1
    assert github.added == []
    assert github.removed == []


def test_run_mutation_failure_marks_run_failed_but_applies_siblings() -> None:
    github = FakeGitHub(
        [[_pr(1, "conflicting"), _pr(2, "conflicting"), _pr(3, "mergeable", (CONFLICT,))]],
        failing_ids=frozenset({"PR_1", "PR_3"}),
    )

    outcome = run_conflict_labeling(_config(), github, sleep=lambda _: None)

    assert not outcome.succeeded
    assert outcome.stage == "reconcile"
    assert github.added == ["PR_2"]
    assert "Labeling PR #1 failed" in outcome.message
    assert "Unlabeling PR #3 failed" in outcome.message
    assert outcome.report is not None
    assert len(outcome.report.failed) == 2
    assert len(outcome.report.applied) == 1


def test_run_dry_run_plans_without_mutating() -> None:
    github = FakeGitHub([[_pr(1, "conflicting"), _pr(2, "mergeable", (CONFLICT,))]])

    outcome = run_conflict_labeling(_config(), github, sleep=lambda _: None, dry_run=True)

    assert outcome.succeeded
    assert outcome.message.startswith("Planned 2 label change(s)")
    assert github.added == []
    assert github.removed == []


def test_second_run_on_converged_state_makes_no_changes() -> None:
    github = FakeGitHub(
        [[_pr(1, "conflicting", (CONFLICT,)), _pr(2, "mergeable"), _pr(3, "mergeable")]]
    )

    outcome = run_conflict_labeling(_config(), github, sleep=lambda _: None)

    assert outcome.succeeded
    assert outcome.report is not None
    assert outcome.report.results == ()
    assert github.added == []
    assert github.removed == []
