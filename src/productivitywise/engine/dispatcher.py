"""Route intents onto session and break transitions under a response deadline.

Every inbound surface (slash command, DM/mention, button) ends up here. Work is
raced against a fixed budget; when it overruns, the user gets an immediate
provisional answer and the real one is pushed as a DM once it is ready.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from cachetools import TTLCache

from productivitywise.core.clock import Clock, utc_now
from productivitywise.core.logging_config import record_dispatch, record_error
from productivitywise.llm.generator import TextGenerator, prompt
from productivitywise.storage import SessionStore, UserRecord

from . import responses
from .breaks import AcceptKind, BreakService
from .classifier import IntentClassifier, keyword_hint
from .executor import Completed, ExecutionError, TimedOut, TimeoutBoundedExecutor
from .intents import DEFAULT_FOCUS_MINUTES, CommandKind, Intent, IntentAction
from .ports import Pusher
from .productivity import ProductivityService
from .responses import Response
from .sessions import SessionStateMachine, TransitionKind

logger = logging.getLogger(__name__)

PLACEHOLDER_NAME = "Slack User"

_REPLY_SYSTEM_PROMPT = (
    "You are a friendly productivity assistant helping users with focus and wellness."
)
_GREETING_PROMPT = """The user sent a greeting: "{text}"

Generate a warm, friendly greeting response that:
1. Responds to their greeting appropriately
2. Introduces yourself as a productivity assistant
3. Briefly explains your main capabilities (focus sessions, breaks, productivity tracking)
4. Invites them to try your features

Keep it friendly and concise (at most three sentences)."""


class CommandDispatcher:
    def __init__(
        self,
        *,
        store: SessionStore,
        classifier: IntentClassifier,
        sessions: SessionStateMachine,
        breaks: BreakService,
        productivity: ProductivityService,
        executor: TimeoutBoundedExecutor,
        pusher: Pusher | None = None,
        generator: TextGenerator | None = None,
        timeout_ms: int = 1000,
        default_timezone: str = "UTC",
        dedupe_ttl_seconds: int = 300,
        now: Clock = utc_now,
    ) -> None:
        self._store = store
        self._classifier = classifier
        self._sessions = sessions
        self._breaks = breaks
        self._productivity = productivity
        self._executor = executor
        self._pusher = pusher
        self._generator = generator
        self._timeout_ms = timeout_ms
        self._default_timezone = default_timezone
        self._seen_interactions: TTLCache = TTLCache(maxsize=10_000, ttl=dedupe_ttl_seconds)
        self._now = now

    # -- entry points --------------------------------------------------------

    async def handle_command(
        self,
        command: CommandKind | str,
        text: str | None,
        slack_user_id: str,
        team_id: str | None = None,
    ) -> Response:
        """Answer a slash command within the platform's acknowledgment window.

        Inputs the local fast path understands are executed right away (still
        under the dispatch budget). Anything that needs the text generator gets
        a provisional acknowledgment now and the real answer by DM later.
        """
        kind = CommandKind.parse(command)
        if self._classifier.is_fast(text, kind):
            intent = await self._classifier.classify(text, kind)
            return await self.dispatch(intent, slack_user_id, team_id, text=text)

        record_dispatch(action=kind.value if kind else "command", outcome="deferred")
        self._executor.spawn(
            lambda: self._answer_later(text, kind, slack_user_id, team_id),
            label="slow_command",
        )
        return Response(text=responses.PROVISIONAL_ACK_TEXT)

    async def handle_message(
        self, text: str | None, slack_user_id: str, team_id: str | None = None
    ) -> Response:
        """Reply to a DM or mention; there is no acknowledgment deadline here."""
        intent = await self._classifier.classify(text)
        try:
            return await self.execute(intent, slack_user_id, team_id, text=text)
        except Exception as exc:
            logger.exception("Message handling failed for %s", slack_user_id)
            record_error(component="dispatcher", error_type=type(exc).__name__)
            return responses.apology(None)

    async def handle_interaction(
        self,
        action_id: str,
        value: str | None,
        slack_user_id: str,
        team_id: str | None = None,
        *,
        interaction_id: str | None = None,
    ) -> Optional[Response]:
        """Re-enter from a button press; retried deliveries are ignored."""
        if interaction_id:
            if interaction_id in self._seen_interactions:
                logger.info("Ignoring duplicate interaction %s", interaction_id)
                return None
            self._seen_interactions[interaction_id] = True

        intent = responses.intent_for_action(action_id, value)
        if intent is None:
            logger.warning("Unknown action_id %s from %s", action_id, slack_user_id)
            return None
        return await self.dispatch(intent, slack_user_id, team_id)

    async def dispatch(
        self,
        intent: Intent,
        slack_user_id: str,
        team_id: str | None = None,
        *,
        text: str | None = None,
    ) -> Response:
        """Execute ``intent`` under the dispatch budget and always return a reply."""
        action = intent.action.value
        started = time.perf_counter()
        outcome = await self._executor.run(
            lambda: self.execute(intent, slack_user_id, team_id, text=text),
            budget_ms=self._timeout_ms,
            label=f"dispatch_{action}",
            on_late_result=lambda late: self._push(slack_user_id, late),
        )
        elapsed = time.perf_counter() - started

        if isinstance(outcome, Completed):
            record_dispatch(action=action, outcome="completed", duration_s=elapsed)
            return outcome.value
        if isinstance(outcome, TimedOut):
            logger.warning(
                "Dispatch exceeded %sms; answering provisionally",
                self._timeout_ms,
                extra={"action": action, "user_id": slack_user_id, "outcome": "timed_out"},
            )
            record_dispatch(action=action, outcome="timed_out", duration_s=elapsed)
            return responses.provisional(intent)
        if isinstance(outcome, ExecutionError):
            logger.error(
                "Dispatch failed",
                exc_info=outcome.error,
                extra={"action": action, "user_id": slack_user_id, "outcome": "error"},
            )
            record_dispatch(action=action, outcome="error", duration_s=elapsed)
            record_error(component="dispatcher", error_type=type(outcome.error).__name__)
            return responses.apology(intent)
        raise TypeError(f"Unexpected execution outcome: {outcome!r}")

    # -- execution -----------------------------------------------------------

    async def ensure_user(self, slack_user_id: str, team_id: str | None = None) -> UserRecord:
        user = await self._store.get_user_by_slack_id(slack_user_id)
        if user is not None:
            return user
        user = await self._store.create_user(
            slack_user_id=slack_user_id,
            slack_team_id=team_id,
            name=PLACEHOLDER_NAME,
            email=f"{slack_user_id}@slack.local",
            timezone=self._default_timezone,
        )
        logger.info("Auto-created user for %s", slack_user_id, extra={"team_id": team_id})
        self._executor.submit(
            user.id,
            lambda: self._store.log_activity(
                user_id=user.id,
                action="user_auto_created",
                details={"slack_user_id": slack_user_id, "team_id": team_id},
            ),
            label="activity_log",
        )
        return user

    async def execute(
        self,
        intent: Intent,
        slack_user_id: str,
        team_id: str | None = None,
        *,
        text: str | None = None,
    ) -> Response:
        """Run ``intent`` to completion with no deadline."""
        if intent.action is IntentAction.UNSUPPORTED:
            return responses.unsupported(keyword_hint(text))
        if intent.action is IntentAction.GREETING:
            return responses.greeting(await self._phrase_greeting(text))

        user = await self.ensure_user(slack_user_id, team_id)
        if intent.action is IntentAction.FOCUS:
            response = await self._focus(intent, user)
        elif intent.action is IntentAction.BREAK:
            response = await self._break(intent, user)
        else:
            summary = await self._productivity.summarize(user, self._now())
            response = responses.productivity_summary(summary)

        if intent.source == "slow":
            return _with_recommendations(response, intent.action)
        return response

    async def _focus(self, intent: Intent, user: UserRecord) -> Response:
        params = intent.parameters
        interactive = intent.source == "interactive"
        now = self._now()
        if params.end:
            if params.session_id:
                outcome = await self._sessions.end_session(params.session_id, user, now)
            else:
                outcome = await self._sessions.end(user, now)
            if outcome.kind is TransitionKind.ENDED:
                return responses.focus_ended(replace_original=interactive)
            return responses.focus_not_active(replace_original=interactive)

        outcome = await self._sessions.start(user, params.duration or DEFAULT_FOCUS_MINUTES, now)
        if outcome.kind is TransitionKind.STARTED and outcome.session is not None:
            return responses.focus_started(outcome.session, user.timezone)
        return responses.focus_already_active(outcome.session)

    async def _break(self, intent: Intent, user: UserRecord) -> Response:
        params = intent.parameters
        now = self._now()
        if params.accept:
            if not params.suggestion_id:
                return responses.break_not_found()
            acceptance = await self._breaks.accept(params.suggestion_id, user, now)
            if acceptance.kind is AcceptKind.ACCEPTED:
                return responses.break_accepted(acceptance)
            if acceptance.kind is AcceptKind.ALREADY_ACCEPTED:
                return responses.break_already_accepted()
            return responses.break_not_found()
        if params.defer:
            await self._breaks.defer(params.suggestion_id, user)
            return responses.break_deferred()
        if params.override:
            acceptance = await self._breaks.force(user, now, params.break_type)
            return responses.break_forced(acceptance)

        request = await self._breaks.request(user, params.break_type, now)
        if request.decision.approve:
            return responses.break_approved(request)
        return responses.break_rejected(request)

    # -- out of band ---------------------------------------------------------

    async def _answer_later(
        self,
        text: str | None,
        kind: CommandKind | None,
        slack_user_id: str,
        team_id: str | None,
    ) -> None:
        intent = await self._classifier.classify(text, kind)
        try:
            response = await self.execute(intent, slack_user_id, team_id, text=text)
        except Exception as exc:
            logger.exception("Deferred command failed for %s", slack_user_id)
            record_error(component="dispatcher", error_type=type(exc).__name__)
            response = responses.apology(intent)
        await self._push(slack_user_id, response)

    async def _push(self, slack_user_id: str, response: Response) -> None:
        if self._pusher is None:
            logger.warning("No pusher configured; dropping reply for %s", slack_user_id)
            return
        await self._pusher.push(slack_user_id, response.text, response.blocks or None)

    async def _phrase_greeting(self, text: str | None) -> str | None:
        if self._generator is None:
            return None
        try:
            reply = await self._generator.complete(
                prompt(_REPLY_SYSTEM_PROMPT, _GREETING_PROMPT.format(text=text or "hi"))
            )
        except Exception as exc:
            logger.warning("Greeting generation failed: %s", exc)
            record_error(component="text_generator", error_type=type(exc).__name__)
            return None
        return reply.strip() or None


def _with_recommendations(response: Response, action: IntentAction) -> Response:
    tips = responses.RECOMMENDATIONS.get(action)
    if not tips:
        return response
    blocks = list(response.blocks) or [responses.section(response.text)]
    blocks.append(responses.divider())
    blocks.append(
        responses.section("💡 *Recommendations:*\n" + "\n".join(f"• {t}" for t in tips))
    )
    return Response(text=response.text, blocks=blocks, replace_original=response.replace_original)


__all__ = ["CommandDispatcher", "PLACEHOLDER_NAME"]
