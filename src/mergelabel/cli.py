from __future__ import annotations

import argparse
from collections.abc import Mapping
import os
from pathlib import Path
import sys

from mergelabel.config import AppConfig, ConfigError, load_config, load_config_from_env
from mergelabel.github_gateway import GitHubGateway
from mergelabel.observability import configure_logging, escape_workflow_command
from mergelabel.runner import RunOutcome, run_conflict_labeling


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mergelabel")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        help="Label open pull requests that have merge conflicts and unlabel resolved ones",
    )
    run_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="TOML config file; without it, GitHub Actions environment variables are used",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Log the label changes that would be made without applying them",
    )
    run_parser.add_argument(
        "-v",
        "--verbose",
        nargs="?",
        const="high",
        default=None,
        choices=("low", "high"),
        help="Enable runtime logging to stderr (default level: high)",
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()
    environ = os.environ
    in_actions = _in_github_actions(environ)
    try:
        config = _load_app_config(args.config, environ)
    except ConfigError as exc:
        _report_failure(f"Invalid configuration: {exc}", in_actions=in_actions)
        raise SystemExit(1) from exc
    configure_logging(
        _verbose_mode(args.verbose, in_actions=in_actions),
        log_dir=config.runtime.log_dir,
        github_actions=in_actions,
    )

    if args.command == "run":
        outcome = _cmd_run(config, dry_run=bool(args.dry_run))
        if not outcome.succeeded:
            _report_failure(outcome.message, in_actions=in_actions)
            raise SystemExit(1)
        print(outcome.message)
        return

    raise RuntimeError(f"Unknown command: {args.command}")


def _cmd_run(config: AppConfig, *, dry_run: bool) -> RunOutcome:
    github = GitHubGateway(config.repo.owner, config.repo.name, token=config.github_token)
    return run_conflict_labeling(config, github, dry_run=dry_run)


def _load_app_config(path: Path | None, environ: Mapping[str, str]) -> AppConfig:
    if path is None:
        return load_config_from_env(environ)
    return load_config(path, environ=environ)


def _in_github_actions(environ: Mapping[str, str]) -> bool:
    return environ.get("GITHUB_ACTIONS") == "true"


def _verbose_mode(requested: str | None, *, in_actions: bool) -> str | None:
    if requested is not None:
        return requested
    # Debug workflow commands are hidden unless the run enables step debugging.
    return "high" if in_actions else None


def _report_failure(message: str, *, in_actions: bool) -> None:
    if in_actions:
        print(f"::error::{escape_workflow_command(message)}")
        return
    print(f"mergelabel: error: {message}", file=sys.stderr)
