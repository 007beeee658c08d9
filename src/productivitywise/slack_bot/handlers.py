from __future__ import annotations

import re

from slack_bolt.async_app import AsyncApp

from productivitywise.engine.dispatcher import CommandDispatcher
from productivitywise.engine.intents import CommandKind
from productivitywise.engine.responses import ACTION_IDS

ACTION_RE = re.compile(r"^(" + "|".join(re.escape(a) for a in ACTION_IDS) + r")$")


def _team_id(body: dict) -> str | None:
    team = body.get("team")
    if isinstance(team, dict):
        return team.get("id")
    return body.get("team_id") or team


def register_handlers(app: AsyncApp, dispatcher: CommandDispatcher) -> None:
    """
    Registers:
      - /focus, /break, /productivity : answered inside the ack
      - block_actions                 : buttons from our own replies
      - app_mention / DM handlers     : free-text requests
    """

    # --- Slash Commands ---

    async def _slash(ack, body, logger, kind: CommandKind) -> None:
        response = await dispatcher.handle_command(
            kind,
            body.get("text"),
            body["user_id"],
            body.get("team_id"),
        )
        logger.debug("Answering %s for %s", kind.value, body["user_id"])
        await ack(response_type="ephemeral", **response.to_slack())

    @app.command(CommandKind.FOCUS.value)
    async def cmd_focus(ack, body, logger):
        await _slash(ack, body, logger, CommandKind.FOCUS)

    @app.command(CommandKind.BREAK.value)
    async def cmd_break(ack, body, logger):
        await _slash(ack, body, logger, CommandKind.BREAK)

    @app.command(CommandKind.PRODUCTIVITY.value)
    async def cmd_productivity(ack, body, logger):
        await _slash(ack, body, logger, CommandKind.PRODUCTIVITY)

    # --- Buttons ---

    @app.action(ACTION_RE)
    async def on_action(ack, body, action, respond, logger):
        await ack()
        interaction_id = body.get("trigger_id") or action.get("action_ts")
        response = await dispatcher.handle_interaction(
            action["action_id"],
            action.get("value"),
            body["user"]["id"],
            _team_id(body),
            interaction_id=interaction_id,
        )
        if response is None:
            logger.debug("No reply for action %s", action["action_id"])
            return
        await respond(**response.to_slack())

    # --- Free text ---

    @app.event("app_mention")
    async def on_app_mention(body, say):
        ev = body.get("event", {})
        response = await dispatcher.handle_message(
            ev.get("text"), ev.get("user") or "", _team_id(body)
        )
        await say(
            thread_ts=ev.get("thread_ts") or ev.get("ts"),
            **{k: v for k, v in response.to_slack().items() if k != "replace_original"},
        )

    @app.event("message")
    async def on_dm(body, say):
        ev = body.get("event", {})
        # only direct messages from humans (avoid loops)
        if ev.get("channel_type") != "im" or ev.get("subtype") or ev.get("bot_id"):
            return
        if not (ev.get("text") or "").strip():
            return
        response = await dispatcher.handle_message(
            ev.get("text"), ev.get("user") or "", _team_id(body)
        )
        await say(**{k: v for k, v in response.to_slack().items() if k != "replace_original"})


__all__ = ["ACTION_RE", "register_handlers"]
