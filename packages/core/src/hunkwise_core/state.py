"""Persisted review progress, enabling resume after rate limits, timeouts and crashes.

A ReviewState is an immutable value. Every change goes through a pure
transition function that returns a new state, so the driver can apply
updates from concurrently finishing files one at a time without ever
mutating shared data.

The state is stored between runs as an opaque JSON blob (see
``hunkwise_store``). The JSON keys keep the camelCase wire shape so states
written by earlier runs remain readable.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Iterable, Literal, Optional

logger = logging.getLogger(__name__)

STATE_VERSION = "1.0"

FileStatus = Literal["pending", "summarizing", "summarized", "reviewing", "reviewed", "failed", "skipped"]
Phase = Literal["summarizing", "reviewing"]
ErrorType = Literal["rate_limit", "timeout", "network", "api_error", "token_limit", "unknown"]

FILE_STATUSES: tuple[str, ...] = ("pending", "summarizing", "summarized", "reviewing", "reviewed", "failed", "skipped")
ERROR_TYPES: tuple[str, ...] = ("rate_limit", "timeout", "network", "api_error", "token_limit", "unknown")

_COMPLETED = frozenset({"reviewed", "skipped"})
_TO_PROCESS: dict[str, frozenset[str]] = {
    "summarizing": frozenset({"pending", "failed", "summarizing"}),
    # Failed files are not picked up again once reviewing has started; they
    # need an external retry to be moved back.
    "reviewing": frozenset({"summarized", "reviewing"}),
}
_PHASE_ORDER = {"summarizing": 0, "reviewing": 1}

# First match wins, so order matters.
_ERROR_PATTERNS: tuple[tuple[ErrorType, tuple[str, ...]], ...] = (
    ("rate_limit", ("rate limit", "429")),
    ("timeout", ("timeout", "timed out")),
    ("network", ("network", "econnreset", "enotfound", "econnrefused")),
    ("api_error", ("api error", "bad request", "invalid")),
)


class FileNotInStateError(KeyError):
    """Raised when a transition names a file the state does not track."""


class TokenLimitError(Exception):
    """Raised when a request cannot fit the model's token budget."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class FileReviewStatus:
    filename: str
    status: FileStatus
    updated_at: str
    error: Optional[str] = None
    skip_reason: Optional[str] = None
    skip_confidence: Optional[float] = None


@dataclass(frozen=True)
class ErrorRecord:
    message: str
    timestamp: str
    type: ErrorType


@dataclass(frozen=True)
class ReviewState:
    version: str
    started_at: str
    updated_at: str
    commit_id: str
    total_files: int
    completed_files: int
    failed_files: int
    skipped_files: int
    phase: Phase
    files: tuple[FileReviewStatus, ...] = field(default_factory=tuple)
    last_error: Optional[ErrorRecord] = None

    @property
    def filenames(self) -> list[str]:
        return [f.filename for f in self.files]

    def get_file(self, filename: str) -> FileReviewStatus:
        for f in self.files:
            if f.filename == filename:
                return f
        raise FileNotInStateError(filename)


# --------------------------------------------------------------------------- #
# Transitions                                                                  #
# --------------------------------------------------------------------------- #


def create_review_state(commit_id: str, files: Iterable) -> ReviewState:
    """Start tracking a review of ``files`` at ``commit_id``.

    ``files`` may hold filenames or objects with a ``filename`` attribute.
    """
    now = _now()
    names = [f if isinstance(f, str) else f.filename for f in files]
    return ReviewState(
        version=STATE_VERSION,
        started_at=now,
        updated_at=now,
        commit_id=commit_id,
        total_files=len(names),
        completed_files=0,
        failed_files=0,
        skipped_files=0,
        phase="summarizing",
        files=tuple(FileReviewStatus(filename=name, status="pending", updated_at=now) for name in names),
    )


def _membership(status: str) -> tuple[int, int, int]:
    return (
        int(status in _COMPLETED),
        int(status == "failed"),
        int(status == "skipped"),
    )


def update_file_status(
    state: ReviewState,
    filename: str,
    status: FileStatus,
    *,
    error: str | None = None,
    skip_reason: str | None = None,
    skip_confidence: float | None = None,
) -> ReviewState:
    """Return a new state with ``filename`` moved to ``status``.

    Counters are adjusted by the difference between the old and new status's
    membership in completed/failed/skipped, and never drop below zero.
    Optional metadata replaces whatever the file carried before.
    """
    if status not in FILE_STATUSES:
        raise ValueError(f"Unknown file status: {status!r}")

    index = next((i for i, f in enumerate(state.files) if f.filename == filename), None)
    if index is None:
        raise FileNotInStateError(f"File {filename} not found in review state")

    now = _now()
    old = state.files[index]
    old_completed, old_failed, old_skipped = _membership(old.status)
    new_completed, new_failed, new_skipped = _membership(status)

    files = list(state.files)
    files[index] = FileReviewStatus(
        filename=filename,
        status=status,
        updated_at=now,
        error=error,
        skip_reason=skip_reason,
        skip_confidence=skip_confidence,
    )

    return replace(
        state,
        updated_at=now,
        files=tuple(files),
        completed_files=max(0, state.completed_files - old_completed + new_completed),
        failed_files=max(0, state.failed_files - old_failed + new_failed),
        skipped_files=max(0, state.skipped_files - old_skipped + new_skipped),
    )


def update_phase(state: ReviewState, phase: Phase) -> ReviewState:
    """Advance the review phase. Phases only move forward."""
    if phase not in _PHASE_ORDER:
        raise ValueError(f"Unknown phase: {phase!r}")
    if _PHASE_ORDER[phase] < _PHASE_ORDER[state.phase]:
        raise ValueError(f"Cannot move review phase back from {state.phase!r} to {phase!r}")
    return replace(state, phase=phase, updated_at=_now())


def record_error(state: ReviewState, message: str, error_type: ErrorType) -> ReviewState:
    now = _now()
    return replace(
        state,
        updated_at=now,
        last_error=ErrorRecord(message=message, timestamp=now, type=error_type),
    )


# --------------------------------------------------------------------------- #
# Queries                                                                      #
# --------------------------------------------------------------------------- #


def get_files_to_process(state: ReviewState) -> list[FileReviewStatus]:
    wanted = _TO_PROCESS[state.phase]
    return [f for f in state.files if f.status in wanted]


def is_review_complete(state: ReviewState) -> bool:
    # Failed files count as done: they are not retried without an external trigger.
    return state.completed_files + state.failed_files == state.total_files


def is_same_review(a: ReviewState | None, b: ReviewState | None) -> bool:
    """True when both states track the same commit and the same set of files."""
    if a is None or b is None:
        return False
    if a.commit_id != b.commit_id:
        return False
    if len(a.files) != len(b.files):
        return False
    return set(a.filenames) == set(b.filenames)


def get_progress_summary(state: ReviewState) -> str:
    total = state.total_files
    completed = state.completed_files
    percentage = round(completed / total * 100) if total > 0 else 0

    summary = f"Progress: {completed}/{total} files ({percentage}%)"
    if state.skipped_files > 0:
        summary += f" • {state.skipped_files} skipped"
    if state.failed_files > 0:
        summary += f" • {state.failed_files} failed"
    if state.last_error is not None:
        summary += f"\n⚠️ Last error: {state.last_error.message}"
    return summary


def classify_error(error: object) -> ErrorType:
    """Classify an error (or its message) by case-insensitive substring match."""
    text = str(error).lower()
    for error_type, needles in _ERROR_PATTERNS:
        if any(needle in text for needle in needles):
            return error_type
    return "unknown"


def classify_exception(exc: BaseException) -> ErrorType:
    if isinstance(exc, TokenLimitError):
        return "token_limit"
    if isinstance(exc, TimeoutError):
        return "timeout"
    if isinstance(exc, ConnectionError):
        return "network"
    return classify_error(exc)


# --------------------------------------------------------------------------- #
# Serialization                                                                #
# --------------------------------------------------------------------------- #


def _file_to_dict(f: FileReviewStatus) -> dict:
    data: dict = {"filename": f.filename, "status": f.status, "updatedAt": f.updated_at}
    if f.error is not None:
        data["error"] = f.error
    if f.skip_reason is not None:
        data["skipReason"] = f.skip_reason
    if f.skip_confidence is not None:
        data["skipConfidence"] = f.skip_confidence
    return data


def state_to_dict(state: ReviewState) -> dict:
    data: dict = {
        "version": state.version,
        "startedAt": state.started_at,
        "updatedAt": state.updated_at,
        "commitId": state.commit_id,
        "totalFiles": state.total_files,
        "completedFiles": state.completed_files,
        "failedFiles": state.failed_files,
        "skippedFiles": state.skipped_files,
        "phase": state.phase,
        "files": [_file_to_dict(f) for f in state.files],
    }
    if state.last_error is not None:
        data["lastError"] = {
            "message": state.last_error.message,
            "timestamp": state.last_error.timestamp,
            "type": state.last_error.type,
        }
    return data


def state_from_dict(data: dict) -> ReviewState:
    """Build a ReviewState from its JSON shape. Raises on malformed input."""
    last_error = data.get("lastError")
    return ReviewState(
        version=data["version"],
        started_at=data["startedAt"],
        updated_at=data.get("updatedAt", data["startedAt"]),
        commit_id=data["commitId"],
        total_files=int(data.get("totalFiles", len(data["files"]))),
        completed_files=int(data.get("completedFiles", 0)),
        failed_files=int(data.get("failedFiles", 0)),
        skipped_files=int(data.get("skippedFiles", 0)),
        phase=data.get("phase", "summarizing"),
        files=tuple(
            FileReviewStatus(
                filename=f["filename"],
                status=f["status"],
                updated_at=f.get("updatedAt", data["startedAt"]),
                error=f.get("error"),
                skip_reason=f.get("skipReason"),
                skip_confidence=f.get("skipConfidence"),
            )
            for f in data["files"]
        ),
        last_error=(
            ErrorRecord(message=last_error["message"], timestamp=last_error["timestamp"], type=last_error["type"])
            if last_error
            else None
        ),
    )


def serialize_state(state: ReviewState) -> str:
    return json.dumps(state_to_dict(state), indent=2, ensure_ascii=False)


def deserialize_state(blob: str | None) -> ReviewState | None:
    """Parse a stored state, returning None for anything unusable.

    Never raises: a missing, corrupt or incompatible state means a cold start.
    """
    if not blob:
        return None
    try:
        data = json.loads(blob)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Stored review state is not valid JSON, starting fresh: %s", e)
        return None

    if not isinstance(data, dict):
        return None
    if not data.get("version") or not data.get("startedAt") or not data.get("commitId"):
        return None
    if not isinstance(data.get("files"), list):
        return None
    if data["version"] != STATE_VERSION:
        logger.info("Stored review state has version %r, expected %r; starting fresh", data["version"], STATE_VERSION)
        return None

    try:
        state = state_from_dict(data)
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        logger.warning("Stored review state is malformed, starting fresh: %s", e)
        return None

    if not _is_well_formed(state):
        logger.warning("Stored review state has unexpected field values, starting fresh")
        return None
    return state


def _is_str(value, optional: bool = False) -> bool:
    return isinstance(value, str) or (optional and value is None)


def _is_well_formed(state: ReviewState) -> bool:
    """Check field types and enum values that json.loads cannot guarantee."""
    if not all(_is_str(v) for v in (state.version, state.started_at, state.updated_at, state.commit_id)):
        return False
    if not _is_str(state.phase) or state.phase not in _PHASE_ORDER:
        return False
    for f in state.files:
        if not (_is_str(f.filename) and _is_str(f.status) and _is_str(f.updated_at)):
            return False
        if f.status not in FILE_STATUSES:
            return False
        if not (_is_str(f.error, optional=True) and _is_str(f.skip_reason, optional=True)):
            return False
        if f.skip_confidence is not None and (
            isinstance(f.skip_confidence, bool) or not isinstance(f.skip_confidence, (int, float))
        ):
            return False
    if len({f.filename for f in state.files}) != len(state.files):
        return False
    error = state.last_error
    if error is not None:
        if not (_is_str(error.message) and _is_str(error.timestamp) and _is_str(error.type)):
            return False
        if error.type not in ERROR_TYPES:
            return False
    return True
