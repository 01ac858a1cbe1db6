"""
Intent extraction tests: transcript sanitization and the reminder grammar.
"""
from datetime import datetime, timedelta, timezone

import pytest

from voice_pipeline.errors import ParseError
from voice_pipeline.intent import ReminderGrammar, resolve_due, sanitize_transcript, split_due

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def _ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


@pytest.fixture
def grammar():
    return ReminderGrammar(now=lambda: NOW)


class TestSanitize:

    def test_removes_bracketed_annotations(self):
        assert sanitize_transcript("[NOISE] remind alice[COUGH] to call") == " remind alice to call"

    def test_plain_text_unchanged(self):
        assert sanitize_transcript("remind alice to call at 5pm") == "remind alice to call at 5pm"


class TestResolveDue:

    def test_clock_time_later_today(self):
        assert resolve_due("at 5pm", NOW) == _ms(NOW.replace(hour=17))

    def test_24h_clock(self):
        assert resolve_due("at 17:30", NOW) == _ms(NOW.replace(hour=17, minute=30))

    def test_past_time_rolls_to_tomorrow(self):
        assert resolve_due("at 9", NOW) == _ms(NOW.replace(hour=9) + timedelta(days=1))

    def test_tomorrow(self):
        assert resolve_due("tomorrow at 9 a.m.", NOW) == _ms(NOW.replace(hour=9) + timedelta(days=1))

    def test_tonight(self):
        assert resolve_due("at 8 tonight", NOW) == _ms(NOW.replace(hour=20))

    def test_relative(self):
        assert resolve_due("in 10 minutes", NOW) == _ms(NOW + timedelta(minutes=10))
        assert resolve_due("in 2 hours", NOW) == _ms(NOW + timedelta(hours=2))

    def test_deadline(self):
        assert resolve_due("by 6pm", NOW) == _ms(NOW.replace(hour=18))
        assert resolve_due("by tomorrow at 9am", NOW) == _ms(NOW.replace(hour=9) + timedelta(days=1))

    def test_unknown_phrase_passed_through(self):
        assert resolve_due("on Monday", NOW) == "on Monday"
        assert resolve_due("at 25pm", NOW) == "at 25pm"


class TestSplitDue:

    def test_keyword_inside_action(self):
        assert split_due("turn on the lights at 7pm", NOW) == (
            "turn on the lights", "at 7pm", _ms(NOW.replace(hour=19)),
        )

    def test_relative_after_keyword_in_action(self):
        assert split_due("check in with the team in 10 minutes", NOW) == (
            "check in with the team", "in 10 minutes", _ms(NOW + timedelta(minutes=10)),
        )

    def test_longest_resolvable_due_wins(self):
        action, due_phrase, due = split_due("sign up for the race by tomorrow at 9am", NOW)

        assert action == "sign up for the race"
        assert due_phrase == "by tomorrow at 9am"
        assert due == _ms(NOW.replace(hour=9) + timedelta(days=1))

    def test_unresolvable_splits_at_first_keyword(self):
        assert split_due("sign up by friday", NOW) == ("sign up", "by friday", "by friday")

    def test_no_keyword(self):
        assert split_due("call alice", NOW) is None
        assert split_due("at 5pm", NOW) is None


class TestReminderGrammar:

    @pytest.mark.asyncio
    async def test_single_recipient(self, grammar):
        action = await grammar.parse("remind alice to call at 5pm")

        assert action.recipients == ("Alice",)
        assert action.action == "call"
        assert action.due == _ms(NOW.replace(hour=17))
        assert action.confirmation == "OK, I'll remind Alice to call at 5pm."

    @pytest.mark.asyncio
    async def test_several_recipients(self, grammar):
        action = await grammar.parse("Please remind alice, bob and carol to stretch in 10 minutes.")

        assert action.recipients == ("Alice", "Bob", "Carol")
        assert action.action == "stretch"
        assert action.confirmation == "OK, I'll remind Alice, Bob and Carol to stretch in 10 minutes."

    @pytest.mark.asyncio
    async def test_me_becomes_you(self, grammar):
        action = await grammar.parse("remind me to buy milk tomorrow at 6pm")

        assert action.recipients == ("me",)
        assert action.action == "buy milk"
        assert action.due == _ms(NOW.replace(hour=18) + timedelta(days=1))
        assert action.confirmation == "OK, I'll remind you to buy milk tomorrow at 6pm."

    @pytest.mark.asyncio
    async def test_action_containing_due_keyword(self, grammar):
        action = await grammar.parse("remind bob to turn on the lights at 7pm")

        assert action.recipients == ("Bob",)
        assert action.action == "turn on the lights"
        assert action.due == _ms(NOW.replace(hour=19))
        assert action.confirmation == "OK, I'll remind Bob to turn on the lights at 7pm."

    @pytest.mark.asyncio
    async def test_unresolved_due_kept_as_text(self, grammar):
        action = await grammar.parse("remind bob to pay the rent on Monday")

        assert action.action == "pay the rent"
        assert action.due == "on Monday"

    @pytest.mark.asyncio
    async def test_gibberish_rejected(self, grammar):
        with pytest.raises(ParseError):
            await grammar.parse("asdf qwerty")

    @pytest.mark.asyncio
    async def test_missing_due_rejected(self, grammar):
        with pytest.raises(ParseError):
            await grammar.parse("remind alice to call")

    @pytest.mark.asyncio
    async def test_empty_rejected(self, grammar):
        with pytest.raises(ParseError):
            await grammar.parse("")
