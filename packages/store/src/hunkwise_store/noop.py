"""No-op store — every run starts cold.

Using a NoOpStateStore rather than None lets the driver always call
store.load()/store.save() without conditional checks.
"""

from __future__ import annotations

from hunkwise_store.base import BaseStateStore


class NoOpStateStore(BaseStateStore):
    """Silently discards all state — resume is effectively disabled."""

    def load(self, key: str) -> str | None:
        return None

    def save(self, key: str, blob: str) -> None:
        pass  # intentional no-op

    def delete(self, key: str) -> None:
        pass
