"""Decide which changed files are worth sending to the model."""

from __future__ import annotations

# Binary assets and archives: their patches are empty or meaningless as text.
NON_CODE_EXTENSIONS = frozenset(
    {
        ".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".webp", ".bmp", ".pdf",
        ".woff", ".woff2", ".ttf", ".eot", ".otf",
        ".mp4", ".mp3", ".wav", ".ogg",
        ".zip", ".tar", ".gz", ".rar", ".7z", ".jar", ".whl",
        ".lock",  # e.g. poetry.lock, Pipfile.lock
        ".map",  # source maps
    }
)

# Generated files that keep a source-like extension.
GENERATED_SUFFIXES = (".min.js", ".min.css", "_pb2.py", ".pb.go")
GENERATED_FILENAMES = frozenset({"package-lock.json", "pnpm-lock.yaml", "go.sum", "Cargo.lock"})

# GitHub file statuses whose new side can be reviewed.
REVIEWABLE_STATUSES = frozenset({"added", "modified", "renamed", "changed"})


def is_code_file(file_name: str) -> bool:
    lowered = file_name.lower()
    if file_name.rsplit("/", 1)[-1] in GENERATED_FILENAMES:
        return False
    if lowered.endswith(GENERATED_SUFFIXES):
        return False
    return not any(lowered.endswith(ext) for ext in NON_CODE_EXTENSIONS)


def is_reviewable(file) -> bool:
    """True for a PR file with a textual patch, a reviewable status and a code-like name."""
    return bool(file.patch) and file.status in REVIEWABLE_STATUSES and is_code_file(file.filename)
