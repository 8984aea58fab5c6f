from __future__ import annotations

from collections.abc import Mapping
import logging
import os
import subprocess


class CommandError(RuntimeError):
    def __init__(self, message: str, *, exit_code: int, stderr: str) -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr


LOGGER = logging.getLogger("mergelabel.shell")


def _preview(text: str, *, limit: int = 200) -> str:
    compact = text.replace("\n", "\\n").strip()
    if not compact:
        return "<empty>"
    if len(compact) <= limit:
        return compact
    return f"{compact[:limit]}..."


def run(
    argv: list[str],
    *,
    input_text: str | None = None,
    extra_env: Mapping[str, str] | None = None,
) -> str:
    """Run ``argv`` and return stdout, raising CommandError on a non-zero exit.

    ``extra_env`` is layered over the current environment so credentials can be
    handed to the child process without being placed on the command line.
    """
    env: dict[str, str] | None = None
    if extra_env:
        env = dict(os.environ)
        env.update(extra_env)
    try:
        proc = subprocess.run(
            argv,
            input=input_text,
            env=env,
            text=True,
            capture_output=True,
            check=False,
        )
    except OSError as exc:
        LOGGER.error(
            "event=command_failed command=%s exit_code=127 stderr=%s",
            argv[0] if argv else "<none>",
            _preview(str(exc)),
        )
        raise CommandError(
            f"Command {' '.join(argv[:3])} could not be started: {exc}",
            exit_code=127,
            stderr=str(exc),
        ) from exc
    if proc.returncode != 0:
        LOGGER.error(
            "event=command_failed command=%s exit_code=%s stderr=%s",
            argv[0] if argv else "<none>",
            proc.returncode,
            _preview(proc.stderr),
        )
        raise CommandError(
            f"Command {' '.join(argv[:3])} exited with {proc.returncode}: "
            f"{_preview(proc.stderr)}",
            exit_code=proc.returncode,
            stderr=proc.stderr,
        )
    return proc.stdout
