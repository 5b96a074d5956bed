"""Decide what work a resumed run still has to do."""

from __future__ import annotations

import logging
from typing import Sequence, TypeVar

from hunkwise_core.state import (
    Phase,
    ReviewState,
    create_review_state,
    deserialize_state,
    get_files_to_process,
    is_same_review,
)

logger = logging.getLogger(__name__)

F = TypeVar("F")


def filter_files_for_resume(files: Sequence[F], state: ReviewState | None, phase: Phase) -> list[F]:
    """Keep only the files ``state`` still expects to process, in their original order.

    ``files`` are objects with a ``filename`` attribute. With no state every
    file is returned.
    """
    if state is None:
        return list(files)

    remaining = {f.filename for f in get_files_to_process(state)}
    filtered = [f for f in files if f.filename in remaining]

    skipped = len(files) - len(filtered)
    if skipped > 0:
        logger.info("Resume: skipping %d already-processed file(s) in %s phase", skipped, phase)
        logger.info(
            "Resume: processing %d remaining file(s): %s",
            len(filtered),
            ", ".join(f.filename for f in filtered),
        )
    return filtered


def should_resume_review(enabled: bool, state: ReviewState | None) -> bool:
    if not enabled or state is None:
        return False
    return len(get_files_to_process(state)) > 0


def load_resumable_state(blob: str | None, commit_id: str, filenames: Sequence[str]) -> ReviewState | None:
    """Return the stored state only if it tracks this exact commit and file set."""
    stored = deserialize_state(blob)
    if stored is None:
        return None
    if not is_same_review(stored, create_review_state(commit_id, filenames)):
        logger.info(
            "Stored review state is for commit %s with %d file(s); not resuming",
            stored.commit_id[:7],
            stored.total_files,
        )
        return None
    return stored
