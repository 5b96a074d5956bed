"""Abstract review-state store interface.

A store keeps one opaque text blob (the serialized ReviewState) per key,
where a key identifies a pull request (``owner/repo#123``). Stores never
interpret the blob; validation and version checks live in hunkwise_core.
The CLI depends on BaseStateStore rather than a concrete backend, so backends
are swappable without touching CLI code.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseStateStore(ABC):
    """Pluggable persistence layer for in-progress review state.

    Implementations must be safe to call from CI environments where no
    interactive credentials are available; all auth must happen via
    constructor arguments or environment variables resolved at init time.
    """

    @abstractmethod
    def load(self, key: str) -> str | None:
        """Return the stored blob for ``key``, or None.

        Returns None when nothing is stored or the backend is unreachable;
        never raises. A missing state simply means a cold start.
        """

    @abstractmethod
    def save(self, key: str, blob: str) -> None:
        """Persist ``blob`` under ``key``, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the blob stored under ``key``, if any."""

    def close(self) -> None:
        """Release any resources held by the store (connections, file handles).

        Optional: subclasses that need cleanup should override this.
        Default is a no-op so callers can always call close() safely.
        """
