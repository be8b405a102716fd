from __future__ import annotations

from pathlib import Path

PROMPT_DIR = Path(__file__).resolve().parent


def load_prompt(filename: str) -> str:
    """Load session instructions shipped with the codebase, or from an absolute path."""

    path = Path(filename)
    if not path.is_absolute():
        path = PROMPT_DIR / filename
    if not path.exists():
        raise RuntimeError(f"Prompt file not found: {filename}")
    return path.read_text(encoding="utf-8").strip()
