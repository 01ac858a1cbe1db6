"""
Phrase hints for speech recognition.

Hints bias recognition towards the names of people reminders are usually
sent to. They are built once at process start from a user-names file and
never change afterwards.

Implementation note:
- The names file is YAML (preferred) or JSON: a list of names, or a mapping
  with a `names` list. PyYAML's safe_load parses both.
"""

from pathlib import Path
from typing import Iterable, Tuple, Union

import yaml

from logging_setup import get_logger, Component

logger = get_logger(Component.STT)


def _load_names(path: Path) -> list[str]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if isinstance(data, dict):
        data = data.get("names")
    if data is None:
        return []
    if not isinstance(data, list):
        raise ValueError(f"User names file {path} must contain a list of names")
    return [str(name).strip() for name in data if str(name).strip()]


def build_phrase_hints(names: Iterable[str]) -> Tuple[str, ...]:
    """For every name, hint both the command prefix and the bare name."""
    hints: list[str] = []
    for name in names:
        hints.append(f"Remind {name}")
        hints.append(name)
    return tuple(hints)


def load_phrase_hints(path: Union[str, Path]) -> Tuple[str, ...]:
    """
    Load phrase hints from a user-names file.

    A missing file yields no hints (recognition still works, just unbiased).
    """
    path = Path(path)
    if not path.exists():
        logger.warning("User names file not found, recognizing without hints", path=str(path))
        return ()

    hints = build_phrase_hints(_load_names(path))
    logger.info("Phrase hints loaded", path=str(path), hint_count=len(hints))
    return hints
