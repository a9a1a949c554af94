"""Structured operation logging for phpvm commands.

Every CLI command runs inside an :class:`OperationScope`. When the scope
closes, one JSON record describing the command, its steps and its result is
appended to ``operations.jsonl`` in the configured log directory. Logging is
best effort: when the directory cannot be created or written the logger
disables itself instead of failing the command.
"""
from __future__ import annotations

import json
import logging
import os
import time
import uuid
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

LOGGER = logging.getLogger(__name__)

OPERATIONS_LOG_NAME = "operations.jsonl"


def _iso_now() -> str:
    return datetime.now(tz=UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def _sanitize(value: object) -> Any:
    """Return a JSON-safe rendition of *value*."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Mapping):
        return {str(key): _sanitize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize(item) for item in value]
    return str(value)


class OperationScope:
    """Collects steps and the final result for a single command."""

    def __init__(
        self,
        logger: StructuredLogger,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> None:
        """Initialise the scope for *command*."""
        self._logger = logger
        self.command = command
        self.op_id = uuid.uuid4().hex[:12]
        self.args = dict(args or {})
        self.target = dict(target or {})
        self.steps: list[dict[str, object]] = []
        self.result: dict[str, object] | None = None
        self._started_at = _iso_now()
        self._start = time.perf_counter()

    def add_step(self, step_id: str, *, status: str = "success", detail: str | None = None) -> None:
        """Record an intermediate step."""
        step: dict[str, object] = {"id": step_id, "status": status, "at": _iso_now()}
        if detail is not None:
            step["detail"] = detail
        self.steps.append(step)
        LOGGER.debug("%s [%s] %s %s", self.command, status, step_id, detail or "")

    def success(
        self,
        message: str,
        *,
        changed: int = 0,
        warnings: Sequence[str] | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as successful."""
        self._set_result(
            "success",
            message,
            changed=changed,
            warnings=warnings,
            errors=None,
            rc=0,
            context=context,
        )

    def warning(
        self,
        message: str,
        *,
        warnings: Sequence[str] | None = None,
        errors: Sequence[str] | None = None,
        changed: int = 0,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as completed with warnings."""
        self._set_result(
            "warning",
            message,
            changed=changed,
            warnings=warnings if warnings is not None else [message],
            errors=errors,
            rc=0,
            context=context,
        )

    def error(
        self,
        message: str,
        *,
        errors: Sequence[str] | None = None,
        rc: int = 1,
        context: Mapping[str, object] | None = None,
    ) -> None:
        """Mark the operation as failed."""
        self._set_result(
            "error",
            message,
            changed=0,
            warnings=None,
            errors=errors if errors is not None else [message],
            rc=rc,
            context=context,
        )

    def _set_result(
        self,
        status: str,
        message: str,
        *,
        changed: int,
        warnings: Sequence[str] | None,
        errors: Sequence[str] | None,
        rc: int,
        context: Mapping[str, object] | None,
    ) -> None:
        result: dict[str, object] = {
            "status": status,
            "message": message,
            "changed": changed,
            "rc": rc,
            "warnings": list(warnings or []),
            "errors": list(errors or []),
        }
        if context:
            result["context"] = _sanitize(context)
        self.result = result

    def to_record(self) -> dict[str, object]:
        """Return the JSON record persisted for this operation."""
        duration_ms = int((time.perf_counter() - self._start) * 1000)
        return {
            "op_id": self.op_id,
            "command": self.command,
            "args": _sanitize(self.args),
            "target": _sanitize(self.target),
            "started_at": self._started_at,
            "finished_at": _iso_now(),
            "duration_ms": duration_ms,
            "user": os.environ.get("USER", ""),
            "steps": self.steps,
            "result": self.result,
        }


class StructuredLogger:
    """Append-only JSONL logger for CLI operations."""

    def __init__(self, log_dir: Path) -> None:
        """Prepare *log_dir*; disable logging when it is unusable."""
        self.log_dir = log_dir
        self._operations_log_path = log_dir / OPERATIONS_LOG_NAME
        self._enabled = True
        try:
            log_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            LOGGER.warning("Operation logging disabled; cannot create %s: %s", log_dir, exc)
            self._enabled = False

    @contextmanager
    def operation(
        self,
        command: str,
        *,
        args: Mapping[str, object] | None = None,
        target: Mapping[str, object] | None = None,
    ) -> Iterator[OperationScope]:
        """Yield an :class:`OperationScope` and persist it on exit."""
        scope = OperationScope(self, command, args=args, target=target)
        try:
            yield scope
        except BaseException as exc:
            if scope.result is None:
                scope.error(f"{type(exc).__name__}: {exc}" if str(exc) else type(exc).__name__)
            raise
        finally:
            if scope.result is None:
                scope.success("Operation completed.")
            self._write(scope.to_record())

    def _write(self, record: Mapping[str, object]) -> None:
        if not self._enabled:
            return
        line = json.dumps(record, sort_keys=True)
        try:
            with self._operations_log_path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
        except OSError as exc:
            LOGGER.warning("Operation logging disabled after write failure: %s", exc)
            self._enabled = False


__all__ = ["OperationScope", "StructuredLogger"]
