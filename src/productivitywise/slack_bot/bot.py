from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from aiohttp import web
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp
from slack_bolt.context.context import BoltContext
from slack_sdk.web.async_client import AsyncWebClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from productivitywise.core.config import Settings, settings as default_settings
from productivitywise.core.logging_config import configure_logging, record_error
from productivitywise.engine.breaks import BreakDecisionEngine, BreakService
from productivitywise.engine.classifier import IntentClassifier
from productivitywise.engine.dispatcher import CommandDispatcher
from productivitywise.engine.executor import TimeoutBoundedExecutor
from productivitywise.engine.meetings import MeetingOracle
from productivitywise.engine.productivity import ProductivityService
from productivitywise.engine.sessions import SessionStateMachine
from productivitywise.llm import AutogenTextGenerator, build_autogen_chat_client, llm_configured
from productivitywise.storage import SqlAlchemySessionStore, ensure_schema

from .delivery import SlackPusher
from .handlers import register_handlers
from .status import SlackStatusNotifier

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    app: AsyncApp
    dispatcher: CommandDispatcher
    executor: TimeoutBoundedExecutor
    scheduler: AsyncIOScheduler
    engine: AsyncEngine
    generator: AutogenTextGenerator | None

    async def shutdown(self) -> None:
        await self.executor.drain()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        if self.generator is not None:
            await self.generator.close()
        await self.engine.dispose()


def _coerce_async_database_url(database_url: str) -> str:
    if database_url.startswith("sqlite+aiosqlite://"):
        return database_url
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


def _ensure_sqlite_dir(database_url: str) -> None:
    prefix = "sqlite+aiosqlite:///"
    if not database_url.startswith(prefix):
        return
    path = database_url[len(prefix):]
    if path and path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)


async def build_runtime(config: Settings | None = None) -> Runtime:
    config = config or default_settings

    scheduler = AsyncIOScheduler()
    scheduler.start()

    async_url = _coerce_async_database_url(config.database_url)
    _ensure_sqlite_dir(async_url)
    engine = create_async_engine(async_url)
    await ensure_schema(engine)
    sessionmaker = async_sessionmaker(engine, expire_on_commit=False)
    store = SqlAlchemySessionStore(sessionmaker)

    app = AsyncApp(token=config.slack_bot_token, signing_secret=config.slack_signing_secret)
    bot_client: AsyncWebClient = app.client
    user_client = (
        AsyncWebClient(token=config.slack_user_token) if config.slack_user_token else None
    )

    executor = TimeoutBoundedExecutor(default_budget_ms=config.dispatch_timeout_ms)
    pusher = SlackPusher(bot_client)
    notifier = SlackStatusNotifier(pusher, user_client)

    generator: AutogenTextGenerator | None = None
    if llm_configured(config):
        generator = AutogenTextGenerator(build_autogen_chat_client(config=config))
    else:
        logger.warning("OPENAI_API_KEY not set; free-text requests will be unsupported")

    oracle = MeetingOracle(store)
    sessions = SessionStateMachine(
        store, executor, notifier, pusher=pusher, scheduler=scheduler
    )
    breaks = BreakService(
        BreakDecisionEngine(oracle),
        store,
        executor,
        notifier,
        break_minutes=config.break_minutes,
        override_minutes=config.override_break_minutes,
        sessions=sessions,
    )
    dispatcher = CommandDispatcher(
        store=store,
        classifier=IntentClassifier(
            generator,
            confidence_threshold=config.intent_confidence_threshold,
            default_focus_minutes=config.default_focus_minutes,
        ),
        sessions=sessions,
        breaks=breaks,
        productivity=ProductivityService(store, oracle),
        executor=executor,
        pusher=pusher,
        generator=generator,
        timeout_ms=config.dispatch_timeout_ms,
        default_timezone=config.default_timezone,
        dedupe_ttl_seconds=config.interaction_dedupe_ttl_seconds,
    )

    @app.use
    async def log_everything(
        logger: logging.Logger,
        body: dict,
        context: BoltContext,
        next: Callable[[], Awaitable[None]],
    ) -> None:
        ev = body.get("event", {})
        logger.info(
            "INBOUND type=%s event=%s command=%s user=%s",
            body.get("type"),
            ev.get("type"),
            body.get("command"),
            context.user_id,
        )
        await next()

    register_handlers(app, dispatcher)

    @app.error
    async def on_error(error, body, logger):
        record_error(component="slack_bolt", error_type=type(error).__name__)
        logger.exception("BOLT ERROR: %s\nBODY=%s", error, body)

    return Runtime(
        app=app,
        dispatcher=dispatcher,
        executor=executor,
        scheduler=scheduler,
        engine=engine,
        generator=generator,
    )


async def build_app(config: Settings | None = None) -> AsyncApp:
    return (await build_runtime(config)).app


async def start(config: Settings | None = None) -> None:
    config = config or default_settings
    configure_logging(
        default_level=config.log_level,
        log_format=config.log_format,
        prometheus_port=config.prometheus_port,
    )
    runtime = await build_runtime(config)
    try:
        if config.slack_socket_mode and config.slack_app_token:
            handler = AsyncSocketModeHandler(runtime.app, config.slack_app_token)
            await handler.start_async()
        else:
            # Fallback to HTTP server
            runner = web.AppRunner(runtime.app.web_app(port=config.slack_port))
            await runner.setup()
            await web.TCPSite(runner, port=config.slack_port).start()
            logger.info("Listening for Slack events on :%s", config.slack_port)
            await asyncio.Event().wait()
    finally:
        await runtime.shutdown()


def main() -> None:
    asyncio.run(start())


__all__ = ["Runtime", "build_app", "build_runtime", "main", "start"]
