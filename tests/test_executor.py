"""
Calendar executor tests against a local fake of the calendar REST service.
"""
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp import test_utils

from voice_pipeline.errors import SaveError
from voice_pipeline.executor import CalendarExecutor, match_identity
from voice_pipeline.models import Action

DIRECTORY = [
    {"id": 11, "forename": "Alice", "displayName": "Alice Martin"},
    {"id": 12, "forename": "Bob", "displayName": "Bob Stone"},
]


class FakeCalendar:
    """Records requests and replies with configurable statuses."""

    def __init__(self):
        self.directory_status = 200
        self.reminders_status = 201
        self.directory_calls = 0
        self.saved = []
        self.auth_headers = []

    async def relations(self, request):
        self.directory_calls += 1
        self.auth_headers.append(request.headers.get("Authorization"))
        if self.directory_status != 200:
            return web.Response(status=self.directory_status)
        return web.json_response(DIRECTORY)

    async def reminders(self, request):
        self.auth_headers.append(request.headers.get("Authorization"))
        self.saved.append(await request.json())
        return web.json_response({}, status=self.reminders_status)


@pytest_asyncio.fixture
async def calendar():
    fake = FakeCalendar()
    app = web.Application()
    app.router.add_get("/api/v2/users/myself/relations", fake.relations)
    app.router.add_post("/api/v2/reminders", fake.reminders)
    server = test_utils.TestServer(app)
    await server.start_server()
    executor = CalendarExecutor(base_url=str(server.make_url("/api/v2")))
    yield fake, executor
    await executor.aclose()
    await server.close()


def _action(*recipients):
    return Action(
        recipients=recipients,
        action="call",
        due=1773162000000,
        confirmation="OK, I'll remind Alice to call at 5pm.",
    )


def test_match_identity_is_case_insensitive():
    assert match_identity("alice", DIRECTORY) == 11
    assert match_identity("BOB", DIRECTORY) == 12
    assert match_identity("Carol", DIRECTORY) is None


@pytest.mark.asyncio
async def test_resolves_and_saves(calendar):
    fake, executor = calendar

    resolved = await executor.execute(_action("Alice"), "tok-1")

    assert resolved.recipient_ids == (11,)
    assert fake.saved == [{"recipients": [{"id": 11}], "action": "call", "due": 1773162000000}]
    assert fake.auth_headers == ["Bearer tok-1", "Bearer tok-1"]


@pytest.mark.asyncio
async def test_unmatched_recipient_is_empty_identity(calendar):
    fake, executor = calendar

    resolved = await executor.execute(_action("bob", "Carol"), "tok-1")

    assert resolved.recipient_ids == (12, None)
    assert fake.saved[0]["recipients"] == [{"id": 12}, {}]


@pytest.mark.asyncio
async def test_one_directory_call_per_action(calendar):
    fake, executor = calendar

    await executor.execute(_action("Alice", "Bob", "me"), "tok-1")

    assert fake.directory_calls == 1


@pytest.mark.asyncio
async def test_directory_failure_is_save_error(calendar):
    fake, executor = calendar
    fake.directory_status = 500

    with pytest.raises(SaveError):
        await executor.execute(_action("Alice"), "tok-1")
    assert fake.saved == []


@pytest.mark.asyncio
async def test_persistence_failure_is_save_error(calendar):
    fake, executor = calendar
    fake.reminders_status = 500

    with pytest.raises(SaveError):
        await executor.execute(_action("Alice"), "tok-1")


@pytest.mark.asyncio
async def test_unreachable_service_is_save_error():
    executor = CalendarExecutor(base_url="http://127.0.0.1:9/api/v2")
    try:
        with pytest.raises(SaveError):
            await executor.execute(_action("Alice"), "tok-1")
    finally:
        await executor.aclose()
