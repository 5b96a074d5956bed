import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "model_name": None,  # None = provider default; used for the review pass
    "light_model_name": None,  # None = same as model_name; used for the summarize pass
    "guidelines": None,  # None = use built-in default; set to a path string to override
    "exclude": [],  # fnmatch patterns or directory names to skip (e.g. "migrations/", "*.min.js")
    "review_draft_prs": False,
    "review_simple_changes": False,  # False = let the summarize pass triage trivial files out
    "review_comment_lgtm": False,  # False = drop "LGTM" comments instead of posting them
    "max_files": 150,  # 0 = unlimited
    "max_chars_per_file": 20000,  # full file content sent with the summarize prompt
    "llm_concurrency": 6,
    "github_concurrency": 6,
    "timeout_seconds": 120,
    "retry_max_attempts": 3,
    "retry_per_error_type": {},  # e.g. {"rate_limit": 8}
    "resume": True,
    "batch_limit": 60,
    "store": "comment",  # comment | sqlite | gist | noop
    "store_path": ".hunkwise.db",
    "gist_id": None,
}

BUILTIN_GUIDELINES_DIR = Path(__file__).parent / "guidelines"
_BUILTIN_DEFAULT = BUILTIN_GUIDELINES_DIR / "default.md"


def load_config(config_path: str = ".hunkwise.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .hunkwise.yml in the current directory
      3. CLI argument overrides
    """
    config = {
        **DEFAULT_CONFIG,
        "exclude": list(DEFAULT_CONFIG["exclude"]),
        "retry_per_error_type": dict(DEFAULT_CONFIG["retry_per_error_type"]),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    return config


def load_guidelines(config: dict) -> str:
    """
    Load review guidelines.

    If ``guidelines`` is set in config, loads from that path (relative to cwd).
    Otherwise falls back to the built-in default.
    """
    custom_path = config.get("guidelines")
    if custom_path:
        p = Path(custom_path)
        if not p.exists():
            raise FileNotFoundError(f"Guidelines file not found: {custom_path}")
        return p.read_text()

    if _BUILTIN_DEFAULT.exists():
        return _BUILTIN_DEFAULT.read_text()

    raise FileNotFoundError("No guidelines configured and built-in default is missing.")
