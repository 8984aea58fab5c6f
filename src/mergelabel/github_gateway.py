from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
from typing import cast

from mergelabel.models import Label, Mergeability, PullRequest
from mergelabel.observability import log_event, log_warning_event
from mergelabel.shell import CommandError, run


LOGGER = logging.getLogger("mergelabel.github_gateway")
_MERGEABILITY_BY_GRAPHQL_VALUE: dict[str, Mergeability] = {
    "CONFLICTING": "conflicting",
    "MERGEABLE": "mergeable",
    "UNKNOWN": "unknown",
}

_LABELS_QUERY = """
query($owner: String!, $name: String!, $query: String!, $after: String) {
  repository(owner: $owner, name: $name) {
    labels(first: 100, query: $query, after: $after) {
      pageInfo { hasNextPage endCursor }
      nodes { id name }
    }
  }
}
"""

_OPEN_PULL_REQUESTS_QUERY = """
query($owner: String!, $name: String!, $after: String) {
  repository(owner: $owner, name: $name) {
    pullRequests(first: 100, states: OPEN, after: $after) {
      pageInfo { hasNextPage endCursor }
      nodes {
        id
        number
        mergeable
        labels(first: 100) { nodes { id name } }
      }
    }
  }
}
"""

_ADD_LABELS_MUTATION = """
mutation($labelableId: ID!, $labelIds: [ID!]!) {
  addLabelsToLabelable(input: {labelableId: $labelableId, labelIds: $labelIds}) {
    clientMutationId
  }
}
"""

_REMOVE_LABELS_MUTATION = """
mutation($labelableId: ID!, $labelIds: [ID!]!) {
  removeLabelsFromLabelable(input: {labelableId: $labelableId, labelIds: $labelIds}) {
    clientMutationId
  }
}
"""


class GitHubRequestError(RuntimeError):
    """A GitHub API call failed or returned a payload we cannot interpret."""


@dataclass(frozen=True)
class GitHubGateway:
    owner: str
    name: str
    token: str = field(repr=False)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def fetch_labels(self, query: str) -> list[Label]:
        """Labels matching ``query``; GitHub's label search is fuzzy, not exact."""
        labels: list[Label] = []
        after: str | None = None
        pages = 0
        while True:
            data = self._graphql(
                _LABELS_QUERY,
                {"owner": self.owner, "name": self.name, "query": query, "after": after},
            )
            repository = _require_object(data.get("repository"), what="repository")
            connection = _require_object(repository.get("labels"), what="labels")
            labels.extend(_parse_labels(connection.get("nodes")))
            pages += 1
            after = _next_cursor(connection)
            if after is None:
                break

        log_event(
            LOGGER, "github_read", endpoint="labels", query=query, count=len(labels), pages=pages
        )
        return labels

    def fetch_open_pull_requests(self) -> list[PullRequest]:
        pull_requests: list[PullRequest] = []
        after: str | None = None
        pages = 0
        while True:
            data = self._graphql(
                _OPEN_PULL_REQUESTS_QUERY,
                {"owner": self.owner, "name": self.name, "after": after},
            )
            repository = _require_object(data.get("repository"), what="repository")
            connection = _require_object(repository.get("pullRequests"), what="pullRequests")
            nodes = connection.get("nodes")
            if not isinstance(nodes, list):
                raise GitHubRequestError("Unexpected GitHub response: expected pullRequests.nodes")
            for node in nodes:
                node_obj = _as_object_dict(node)
                if node_obj is None:
                    continue
                pull_requests.append(_parse_pull_request(node_obj))
            pages += 1
            after = _next_cursor(connection)
            if after is None:
                break

        log_event(
            LOGGER,
            "github_read",
            endpoint="open_pull_requests",
            count=len(pull_requests),
            pages=pages,
        )
        return pull_requests

    def add_label(self, pull_request_id: str, label_id: str) -> None:
        self._mutate_labels(
            _ADD_LABELS_MUTATION, "add_label", pull_request_id=pull_request_id, label_id=label_id
        )

    def remove_label(self, pull_request_id: str, label_id: str) -> None:
        self._mutate_labels(
            _REMOVE_LABELS_MUTATION,
            "remove_label",
            pull_request_id=pull_request_id,
            label_id=label_id,
        )

    def _mutate_labels(
        self, mutation: str, operation: str, *, pull_request_id: str, label_id: str
    ) -> None:
        try:
            self._graphql(
                mutation,
                {"labelableId": pull_request_id, "labelIds": [label_id]},
            )
        except GitHubRequestError as exc:
            log_warning_event(
                LOGGER,
                "github_write_failed",
                operation=operation,
                repo_full_name=self.full_name,
                pull_request_id=pull_request_id,
                error=str(exc),
            )
            raise
        log_event(
            LOGGER,
            "github_write",
            operation=operation,
            pull_request_id=pull_request_id,
            label_id=label_id,
        )

    def _graphql(self, query: str, variables: dict[str, object]) -> dict[str, object]:
        body = json.dumps({"query": query, "variables": variables})
        try:
            raw = run(
                ["gh", "api", "graphql", "--input", "-"],
                input_text=body,
                extra_env={"GH_TOKEN": self.token},
            )
        except CommandError as exc:
            raise GitHubRequestError(
                f"GitHub GraphQL request failed for {self.full_name}: {exc}"
            ) from exc

        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise GitHubRequestError(
                f"GitHub returned invalid JSON: {_preview_for_log(raw)}"
            ) from exc

        payload_obj = _as_object_dict(payload)
        if payload_obj is None:
            raise GitHubRequestError("Unexpected GitHub response: expected JSON object")
        errors = payload_obj.get("errors")
        if isinstance(errors, list) and errors:
            raise GitHubRequestError(f"GitHub GraphQL errors: {_format_graphql_errors(errors)}")
        return _require_object(payload_obj.get("data"), what="data")


def _next_cursor(connection: dict[str, object]) -> str | None:
    page_info = _require_object(connection.get("pageInfo"), what="pageInfo")
    if page_info.get("hasNextPage") is not True:
        return None
    cursor = page_info.get("endCursor")
    if not isinstance(cursor, str) or not cursor:
        raise GitHubRequestError("Unexpected GitHub response: missing endCursor")
    return cursor


def _parse_pull_request(node: dict[str, object]) -> PullRequest:
    labels_obj = _as_object_dict(node.get("labels"))
    return PullRequest(
        node_id=_require_str(node.get("id"), field="id"),
        number=_as_int(node.get("number"), field="number"),
        mergeability=_parse_mergeability(node.get("mergeable")),
        labels=tuple(_parse_labels(labels_obj.get("nodes") if labels_obj else [])),
    )


def _parse_mergeability(value: object) -> Mergeability:
    if isinstance(value, str):
        parsed = _MERGEABILITY_BY_GRAPHQL_VALUE.get(value.strip().upper())
        if parsed is not None:
            return parsed
    raise GitHubRequestError(f"Unexpected GitHub mergeable value: {value!r}")


def _parse_labels(nodes: object) -> list[Label]:
    if nodes is None:
        return []
    if not isinstance(nodes, list):
        raise GitHubRequestError("Unexpected GitHub response: expected list of labels")
    labels: list[Label] = []
    for node in nodes:
        node_obj = _as_object_dict(node)
        if node_obj is None:
            continue
        labels.append(
            Label(
                node_id=_require_str(node_obj.get("id"), field="label.id"),
                name=_require_str(node_obj.get("name"), field="label.name"),
            )
        )
    return labels


def _format_graphql_errors(errors: list[object]) -> str:
    messages: list[str] = []
    for error in errors:
        error_obj = _as_object_dict(error)
        message = error_obj.get("message") if error_obj else None
        messages.append(message if isinstance(message, str) else repr(error))
    return "; ".join(messages)


def _preview_for_log(text: str, *, limit: int = 240) -> str:
    compact = text.replace("\n", "\\n").strip()
    if not compact:
        return "<empty>"
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."


def _as_object_dict(value: object) -> dict[str, object] | None:
    if not isinstance(value, dict):
        return None
    if not all(isinstance(key, str) for key in value.keys()):
        return None
    return cast(dict[str, object], value)


def _require_object(value: object, *, what: str) -> dict[str, object]:
    obj = _as_object_dict(value)
    if obj is None:
        raise GitHubRequestError(f"Unexpected GitHub response: expected object for {what}")
    return obj


def _require_str(value: object, *, field: str) -> str:
    if not isinstance(value, str) or not value:
        raise GitHubRequestError(f"Unexpected GitHub response value for {field}")
    return value


def _as_int(value: object, *, field: str) -> int:
    if isinstance(value, bool):
        raise GitHubRequestError(f"Unexpected GitHub response type for {field}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError as exc:
            raise GitHubRequestError(
                f"Unexpected GitHub response value for {field}: {value}"
            ) from exc
    raise GitHubRequestError(f"Unexpected GitHub response type for {field}")
