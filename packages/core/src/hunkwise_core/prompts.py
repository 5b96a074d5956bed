"""Prompt text for the summarize and review passes."""

from __future__ import annotations


def build_system_prompt(guidelines: str) -> str:
    return f"""You are a strict and precise senior code reviewer.
Review the changes below and identify issues according to the guidelines.

{guidelines}

Rules:
- Focus on added and modified lines for direct violations.
- Also consider implications of removed lines — e.g. deleted null checks,
  removed error handling, dropped permission guards.
- Do not comment on code that already follows best practices.
- Avoid assumptions when context is unclear. Be concise and actionable."""


def build_summarize_prompt(
    title: str,
    description: str,
    filename: str,
    file_diff: str,
    review_simple_changes: bool = False,
) -> str:
    triage = ""
    if not review_simple_changes:
        triage = """
Below the summary, triage the change on its own line as exactly one of:
[TRIAGE]: NEEDS_REVIEW
[TRIAGE]: APPROVED

Use APPROVED only for changes with no logic impact (formatting, comments,
renames of local variables, typo fixes). When in doubt, use NEEDS_REVIEW."""

    return f"""## Pull request
Title: `{title}`

{description}

## Diff for `{filename}`
```diff
{file_diff}
```

Summarize the changes in this file in at most 100 words. Describe behaviour,
not formatting.{triage}"""


def build_review_prompt(
    title: str,
    description: str,
    filename: str,
    file_summary: str,
    patches: str,
) -> str:
    """Render the per-file review request around the packed hunk section.

    ``patches`` is the output of pack_patches_into_inputs; it is empty when
    computing the base token cost of the prompt.
    """
    summary_section = f"\n## Summary of changes\n{file_summary}\n" if file_summary else ""
    return f"""## Pull request
Title: `{title}`

{description}
{summary_section}
## Changes in `{filename}`

Each change section has a `---new_hunk---` block with the new code, where
most lines are prefixed with their line number, and a `---old_hunk---`
block with the code it replaced. A `---comment_chains---` block, when
present, holds existing review discussion on that hunk.
{patches}
### Output format

For every issue, respond with the new-file line range, a colon, and the
comment on the following lines. Separate issues with a line containing only
`---`. Example:

12-15:
The loop never terminates when `items` is empty.
```suggestion
while items:
```
---
30-30:
`timeout` is unused.

Line ranges must fall inside a single new hunk. Do not include line number
prefixes inside `suggestion` or `diff` code blocks. If there are no issues,
respond with `LGTM!`."""
