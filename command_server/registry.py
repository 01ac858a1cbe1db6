"""
Per-connection session creation.

The only state shared across sessions is a monotonic client counter used
for human-readable log correlation. Sessions themselves are owned by the
websocket handler that opened them.
"""
import itertools
import uuid

from .connection import Connection
from .session import Pipeline, Session


class SessionRegistry:
    """Assigns identifiers to new connections."""

    def __init__(self):
        self._counter = itertools.count(1)

    def next_client_index(self) -> int:
        # next() on itertools.count is atomic under the GIL and on one event loop
        return next(self._counter)

    @staticmethod
    def new_session_id() -> str:
        """Opaque, unique, carries no PII."""
        return str(uuid.uuid4())

    def open_session(self, connection: Connection, token: str, pipeline: Pipeline) -> Session:
        return Session(
            connection,
            token,
            pipeline,
            session_id=self.new_session_id(),
            client_index=self.next_client_index(),
        )
