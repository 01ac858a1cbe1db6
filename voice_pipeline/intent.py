"""
Transcript to action extraction.

The session only depends on the IntentResolver protocol. ReminderGrammar is
the rule-based resolver used in production: it understands commands of the
form

    [please] remind <names> to|that|about <action> <due>

e.g. "remind alice and bob to buy milk tomorrow at 6pm".
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Callable, Optional, Protocol, Union

from logging_setup import get_logger, Component

from .errors import ParseError
from .models import Action

logger = get_logger(Component.INTENT)

# Non-speech annotations emitted by recognizers, e.g. [COUGH], [SMACK].
_ANNOTATION = re.compile(r"\[\w+\]")

_COMMAND = re.compile(
    r"^\s*(?:please\s+)?(?:(?:can|could|would)\s+you\s+)?(?:please\s+)?remind\s+"
    r"(?P<who>.+?)\s+(?P<verb>to|that|about)\s+(?P<rest>.+?)\s*[.!?]?\s*$",
    re.IGNORECASE,
)
_DUE_START = re.compile(
    r"\s+(?=(?:at|on|by|in|next|this|tomorrow|today|tonight)\b)",
    re.IGNORECASE,
)
_NAME_SEPARATOR = re.compile(r"\s*(?:,|&|\band\b)\s*", re.IGNORECASE)

_DAY_WORDS = ("today", "tonight", "tomorrow")
_CLOCK = re.compile(
    r"^(?:at\s+)?(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*"
    r"(?P<meridiem>a\.?m\.?|p\.?m\.?|o'clock)?$"
)
_RELATIVE = re.compile(r"^in\s+(?P<amount>\d+)\s+(?P<unit>minute|hour|day)s?$")

_SECOND_PERSON = {"me": "you", "my": "your", "myself": "yourself"}


def sanitize_transcript(text: str) -> str:
    """Remove bracketed non-speech annotations such as [COUGH]."""
    return _ANNOTATION.sub("", text)


class IntentResolver(Protocol):
    """Maps a sanitized transcript to an Action or raises ParseError."""

    async def parse(self, text: str) -> Action: ...


def _to_second_person(text: str) -> str:
    return re.sub(
        r"\b(me|my|myself)\b",
        lambda m: _SECOND_PERSON[m.group(1).lower()],
        text,
        flags=re.IGNORECASE,
    )


def _display_names(recipients: tuple[str, ...]) -> str:
    names = ["you" if name == "me" else name for name in recipients]
    if len(names) == 1:
        return names[0]
    return ", ".join(names[:-1]) + " and " + names[-1]


def split_due(rest: str, now: datetime) -> Optional[tuple[str, str, Union[int, str]]]:
    """
    Split "<action> <due phrase>" at a due keyword.

    Keywords such as "on" or "in" also occur inside actions ("turn on the
    lights at 7pm"), so every keyword is tried from the left and the first
    due phrase that resolves to a timestamp wins. If none resolves, the
    split at the first keyword is kept with the due phrase as text.
    Returns None when there is no keyword with an action in front of it.
    """
    splits = [
        (rest[: boundary.start()].strip(), rest[boundary.end():].strip())
        for boundary in _DUE_START.finditer(rest)
    ]
    splits = [(action, due) for action, due in splits if action and due]
    if not splits:
        return None
    for action, due_phrase in splits:
        due = resolve_due(due_phrase, now)
        if isinstance(due, int):
            return action, due_phrase, due
    action, due_phrase = splits[0]
    return action, due_phrase, due_phrase


def resolve_due(phrase: str, now: datetime) -> Union[int, str]:
    """
    Resolve a spoken due phrase to an epoch timestamp in milliseconds.

    Understands "at 5pm", "at 17:30", "tomorrow at 9 a.m.", "at 8 tonight",
    "in 10 minutes" and deadlines such as "by 6pm". Anything else is returned unchanged for the
    calendar service to interpret.
    """
    text = phrase.strip().lower()
    if text.startswith("by "):
        text = text[3:].strip()

    relative = _RELATIVE.match(text)
    if relative:
        unit = relative.group("unit")
        delta = timedelta(**{f"{unit}s": int(relative.group("amount"))})
        return int((now + delta).timestamp() * 1000)

    day = None
    for word in _DAY_WORDS:
        if text.startswith(word + " ") or text == word:
            day, text = word, text[len(word):].strip()
            break
        if text.endswith(" " + word):
            day, text = word, text[: -len(word)].strip()
            break

    clock = _CLOCK.match(text)
    if not clock:
        return phrase

    hour = int(clock.group("hour"))
    minute = int(clock.group("minute") or 0)
    meridiem = (clock.group("meridiem") or "").replace(".", "")
    if meridiem in ("am", "pm") and not 1 <= hour <= 12:
        return phrase
    if meridiem == "pm" and hour < 12:
        hour += 12
    elif meridiem == "am" and hour == 12:
        hour = 0
    elif not meridiem or meridiem == "o'clock":
        if day == "tonight" and hour < 12:
            hour += 12
    if hour > 23 or minute > 59:
        return phrase

    due = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if day == "tomorrow":
        due += timedelta(days=1)
    elif day is None and due <= now:
        due += timedelta(days=1)
    return int(due.timestamp() * 1000)


class ReminderGrammar:
    """Rule-based reminder extraction."""

    def __init__(self, now: Optional[Callable[[], datetime]] = None):
        self._now = now or (lambda: datetime.now().astimezone())

    async def parse(self, text: str) -> Action:
        command = _COMMAND.match(text)
        if not command:
            raise ParseError("unparseable: not a reminder command")

        recipients = tuple(
            "me" if name.lower() == "me" else name.strip().title()
            for name in _NAME_SEPARATOR.split(command.group("who"))
            if name.strip()
        )
        if not recipients:
            raise ParseError("unparseable: no recipients")

        split = split_due(command.group("rest"), self._now())
        if split is None:
            raise ParseError("unparseable: no due time")

        action, due_phrase, due = split
        verb = command.group("verb").lower()

        confirmation = (
            f"OK, I'll remind {_display_names(recipients)} {verb} "
            f"{_to_second_person(action)} {due_phrase}."
        )
        parsed = Action(
            recipients=recipients,
            action=action,
            due=due,
            confirmation=confirmation,
        )
        logger.debug_pii(
            "Reminder parsed",
            recipients=list(parsed.recipients),
            action=parsed.action,
            due=parsed.due,
        )
        return parsed
