from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from productivitywise.core.clock import FrozenClock
from productivitywise.engine.breaks import BreakDecisionEngine, BreakService
from productivitywise.engine.classifier import IntentClassifier
from productivitywise.engine.dispatcher import CommandDispatcher
from productivitywise.engine.executor import TimeoutBoundedExecutor
from productivitywise.engine.meetings import MeetingOracle
from productivitywise.engine.productivity import ProductivityService
from productivitywise.engine.sessions import SessionStateMachine
from productivitywise.storage import SqlAlchemySessionStore, ensure_schema

# Monday 2025-01-06 10:00 UTC
MONDAY_10AM = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self, *, fail: bool = False):
        self.calls = []
        self.fail = fail

    async def set_status(self, user, text, emoji, expires_at):
        self.calls.append(("set", user.slack_user_id, text, emoji, expires_at))
        if self.fail:
            raise RuntimeError("status api down")

    async def clear_status(self, user):
        self.calls.append(("clear", user.slack_user_id))
        if self.fail:
            raise RuntimeError("status api down")


class RecordingPusher:
    def __init__(self):
        self.pushed = []

    async def push(self, slack_user_id, text, blocks=None):
        self.pushed.append({"user": slack_user_id, "text": text, "blocks": blocks})


class DummyGenerator:
    """Returns canned replies in order; an Exception instance is raised instead."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []

    async def complete(self, messages):
        self.calls.append(messages)
        reply = self.replies.pop(0) if self.replies else "{}"
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest_asyncio.fixture()
async def sessionmaker(tmp_path):
    # File-backed so concurrent sessions get separate connections.
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await ensure_schema(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture()
def store(sessionmaker):
    return SqlAlchemySessionStore(sessionmaker)


@pytest.fixture()
def clock():
    return FrozenClock(MONDAY_10AM)


@pytest_asyncio.fixture()
async def executor():
    executor = TimeoutBoundedExecutor(default_budget_ms=1000)
    yield executor
    await executor.drain()


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def failing_notifier():
    return RecordingNotifier(fail=True)


@pytest.fixture()
def pusher():
    return RecordingPusher()


@pytest_asyncio.fixture()
async def user(store):
    return await store.create_user(
        slack_user_id="U1",
        slack_team_id="T1",
        name="Slack User",
        email="U1@slack.local",
        timezone="UTC",
    )


@pytest.fixture()
def sessions(store, executor, notifier, pusher, clock):
    return SessionStateMachine(store, executor, notifier, pusher=pusher, now=clock)


@pytest.fixture()
def breaks(store, executor, notifier, sessions, clock):
    return BreakService(
        BreakDecisionEngine(MeetingOracle(store), now=clock),
        store,
        executor,
        notifier,
        sessions=sessions,
        now=clock,
    )


@pytest.fixture()
def make_dispatcher(store, executor, sessions, breaks, pusher, clock):
    def _make(generator=None, *, timeout_ms=1000, store_override=None):
        active_store = store_override or store
        return CommandDispatcher(
            store=active_store,
            classifier=IntentClassifier(generator),
            sessions=sessions,
            breaks=breaks,
            productivity=ProductivityService(store, MeetingOracle(store), now=clock),
            executor=executor,
            pusher=pusher,
            generator=generator,
            timeout_ms=timeout_ms,
            now=clock,
        )

    return _make


@pytest.fixture()
def generator_cls():
    return DummyGenerator
