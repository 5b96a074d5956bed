"""GistStateStore — zero-infrastructure shared review state via GitHub Gist.

Useful when several CI jobs (or a CI job and a developer's machine) need to
resume the same review: the Gist is readable by anyone with access, and no
database or bucket has to be provisioned.

Data format: a single JSON file named `hunkwise_state.json` inside the Gist,
holding an object of ``{key: blob}``.
"""

from __future__ import annotations

import json
import logging

from hunkwise_store.base import BaseStateStore

logger = logging.getLogger(__name__)

_GIST_FILENAME = "hunkwise_state.json"


class GistStateStore(BaseStateStore):
    """Stores review state blobs in a GitHub Gist as one JSON object.

    The Gist ID is stored in .hunkwise.yml under `gist_id`.
    """

    def __init__(self, gist_id: str, token: str):
        try:
            from github import Github
        except ImportError:
            raise ImportError("PyGithub is required for GistStateStore.")
        self._gist_id = gist_id
        self._gh = Github(token)

    def _get_gist(self):
        return self._gh.get_gist(self._gist_id)

    def load(self, key: str) -> str | None:
        try:
            states = self._read_states(self._get_gist())
        except Exception as e:
            logger.warning("GistStateStore.load() failed: %s", e)
            return None
        return states.get(key)

    def save(self, key: str, blob: str) -> None:
        self._write(key, blob)

    def delete(self, key: str) -> None:
        self._write(key, None)

    def _write(self, key: str, blob: str | None) -> None:
        try:
            gist = self._get_gist()
            states = self._read_states(gist)
            if blob is None:
                states.pop(key, None)
            else:
                states[key] = blob
            gist.edit(files={_GIST_FILENAME: {"content": json.dumps(states, indent=2)}})
        except Exception as e:
            # Never abort the review because persistence failed; the next run
            # just resumes from an older state or starts cold.
            logger.warning("GistStateStore write failed (%s): %s", type(e).__name__, e)

    def _read_states(self, gist) -> dict[str, str]:
        """Read the current JSON object from the Gist file, or return {}."""
        file_obj = gist.files.get(_GIST_FILENAME)
        if file_obj is None:
            return {}
        try:
            data = json.loads(file_obj.content) or {}
        except (json.JSONDecodeError, AttributeError, TypeError):
            return {}
        return data if isinstance(data, dict) else {}
