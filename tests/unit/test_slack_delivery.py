import pytest

pytest.importorskip("slack_sdk")

from productivitywise.slack_bot.delivery import SlackPusher


class DummyClient:
    def __init__(self, *, channel_id="D1", fail_post=False):
        self.opened = []
        self.posted = []
        self._channel_id = channel_id
        self._fail_post = fail_post

    async def conversations_open(self, **payload):
        self.opened.append(payload)
        if not self._channel_id:
            return {"ok": False}
        return {"ok": True, "channel": {"id": self._channel_id}}

    async def chat_postMessage(self, **payload):
        self.posted.append(payload)
        if self._fail_post:
            raise RuntimeError("channel_not_found")
        return {"ok": True, "ts": "1"}


@pytest.mark.asyncio
async def test_push_opens_dm_and_posts_blocks():
    client = DummyClient()
    pusher = SlackPusher(client)  # type: ignore[arg-type]
    blocks = [{"type": "section", "text": {"type": "mrkdwn", "text": "hi"}}]

    await pusher.push("U1", "hi", blocks)

    assert client.opened == [{"users": ["U1"]}]
    assert client.posted == [{"channel": "D1", "text": "hi", "blocks": blocks}]


@pytest.mark.asyncio
async def test_push_reuses_dm_channel():
    client = DummyClient()
    pusher = SlackPusher(client)  # type: ignore[arg-type]

    await pusher.push("U1", "one")
    await pusher.push("U1", "two")

    assert len(client.opened) == 1
    assert [p["text"] for p in client.posted] == ["one", "two"]
    assert "blocks" not in client.posted[0]


@pytest.mark.asyncio
async def test_push_raises_when_dm_cannot_be_opened():
    client = DummyClient(channel_id="")
    pusher = SlackPusher(client)  # type: ignore[arg-type]

    with pytest.raises(RuntimeError):
        await pusher.push("U1", "hi")

    assert client.posted == []


@pytest.mark.asyncio
async def test_push_propagates_post_failures():
    client = DummyClient(fail_post=True)
    pusher = SlackPusher(client)  # type: ignore[arg-type]

    with pytest.raises(RuntimeError, match="channel_not_found"):
        await pusher.push("U1", "hi")
