import pytest

from productivitywise.engine.classifier import (
    IntentClassifier,
    clean_text,
    fast_classify,
    keyword_hint,
    parse_intent_reply,
)
from productivitywise.engine.intents import CommandKind, IntentAction


@pytest.mark.parametrize(
    ("text", "command", "action", "duration", "end", "break_type"),
    [
        ("", "/focus", IntentAction.FOCUS, 25, False, None),
        ("45", "/focus", IntentAction.FOCUS, 45, False, None),
        ("0", "/focus", IntentAction.FOCUS, 25, False, None),
        ("9000", "/focus", IntentAction.FOCUS, 480, False, None),
        ("END", "/focus", IntentAction.FOCUS, None, True, None),
        ("stop", None, IntentAction.FOCUS, None, True, None),
        ("", "/break", IntentAction.BREAK, None, False, "general"),
        ("Stretch", "/break", IntentAction.BREAK, None, False, "stretch"),
        ("15", "/break", IntentAction.BREAK, None, False, "general"),
        ("", "/productivity", IntentAction.PRODUCTIVITY, None, False, None),
        ("30", "/productivity", IntentAction.PRODUCTIVITY, None, False, None),
    ],
)
def test_fast_classify_known_inputs(text, command, action, duration, end, break_type):
    intent = fast_classify(text, command)

    assert intent is not None
    assert intent.action is action
    assert intent.source == "fast"
    if duration is not None:
        assert intent.parameters.duration == duration
    assert intent.parameters.end is end
    if break_type is not None:
        assert intent.parameters.break_type == break_type


def test_fast_classify_leaves_free_text_to_the_generator():
    assert fast_classify("I need to concentrate for a while", "/focus") is None
    assert fast_classify("how was my week?") is None


def test_empty_text_without_command_is_unsupported():
    intent = fast_classify("   ")

    assert intent.action is IntentAction.UNSUPPORTED
    assert intent.source == "fast"


def test_clean_text_strips_mentions():
    assert clean_text("<@U123> 25 ") == "25"
    assert fast_classify("<@UBOT> walk").parameters.break_type == "walk"


def test_keyword_hint():
    assert keyword_hint("can you help me focus") == "focus"
    assert keyword_hint("need some rest") == "break"
    assert keyword_hint("weekly summary please") == "productivity"
    assert keyword_hint("what commands exist") == "help"
    assert keyword_hint("weather in Oslo") is None


def test_parse_reply_extracts_first_json_object():
    reply = 'Sure! {"action": "focus", "parameters": {"duration": 50}, "confidence": 0.9} {"x": 1}'

    intent = parse_intent_reply(reply, threshold=0.7)

    assert intent.action is IntentAction.FOCUS
    assert intent.parameters.duration == 50
    assert intent.confidence == pytest.approx(0.9)
    assert intent.source == "slow"


def test_parse_reply_reads_break_type_alias():
    reply = '{"action": "break", "parameters": {"breakType": "Meditation"}, "confidence": 0.85}'

    intent = parse_intent_reply(reply, threshold=0.7)

    assert intent.parameters.break_type == "meditation"


def test_parse_reply_unknown_break_type_defaults():
    reply = '{"action": "break", "parameters": {"breakType": "nap"}, "confidence": 0.85}'

    assert parse_intent_reply(reply, threshold=0.7).parameters.break_type == "general"


def test_parse_reply_focus_end():
    reply = '{"action": "focus", "parameters": {"end": true}, "confidence": 0.95}'

    assert parse_intent_reply(reply, threshold=0.7).is_end


def test_low_confidence_becomes_unsupported_with_confidence_kept():
    reply = '{"action": "focus", "parameters": {"duration": 30}, "confidence": 0.4}'

    intent = parse_intent_reply(reply, threshold=0.7)

    assert intent.action is IntentAction.UNSUPPORTED
    assert intent.confidence == pytest.approx(0.4)


@pytest.mark.parametrize(
    "reply",
    [
        "no json here",
        "{not valid json",
        '{"parameters": {}, "confidence": 0.9}',
        '{"action": "focus", "parameters": {}}',
        '{"action": "dance", "confidence": 0.9}',
        '{"action": "focus", "confidence": true}',
    ],
)
def test_malformed_replies_become_unsupported(reply):
    assert parse_intent_reply(reply, threshold=0.7).action is IntentAction.UNSUPPORTED


@pytest.mark.asyncio
async def test_classifier_fast_path_skips_generator(generator_cls):
    generator = generator_cls()
    classifier = IntentClassifier(generator)

    intent = await classifier.classify("25", CommandKind.FOCUS)

    assert intent.action is IntentAction.FOCUS
    assert generator.calls == []


@pytest.mark.asyncio
async def test_classifier_prefixes_command_phrase(generator_cls):
    generator = generator_cls(
        '{"action": "focus", "parameters": {"duration": 90}, "confidence": 0.9}'
    )
    classifier = IntentClassifier(generator)

    intent = await classifier.classify("for the whole afternoon", "/focus")

    assert intent.parameters.duration == 90
    user_message = generator.calls[0][-1]
    assert user_message.content == "start a focus session for the whole afternoon"


@pytest.mark.asyncio
async def test_classifier_generator_failure_is_unsupported(generator_cls):
    classifier = IntentClassifier(generator_cls(RuntimeError("provider down")))

    intent = await classifier.classify("plan my day")

    assert intent.action is IntentAction.UNSUPPORTED


@pytest.mark.asyncio
async def test_classifier_without_generator_is_unsupported():
    intent = await IntentClassifier(None).classify("tell me a joke")

    assert intent.action is IntentAction.UNSUPPORTED


@pytest.mark.asyncio
async def test_classifier_respects_configured_threshold(generator_cls):
    reply = '{"action": "productivity", "parameters": {}, "confidence": 0.75}'
    strict = IntentClassifier(generator_cls(reply), confidence_threshold=0.8)
    lenient = IntentClassifier(generator_cls(reply), confidence_threshold=0.7)

    assert (await strict.classify("how did I do")).action is IntentAction.UNSUPPORTED
    assert (await lenient.classify("how did I do")).action is IntentAction.PRODUCTIVITY


@pytest.mark.asyncio
async def test_classifier_uses_configured_default_duration():
    classifier = IntentClassifier(None, default_focus_minutes=50)

    assert (await classifier.classify("", "/focus")).parameters.duration == 50
    assert (await classifier.classify("0", "/focus")).parameters.duration == 50


@pytest.mark.parametrize("command", ["/break", "/productivity"])
def test_end_under_other_commands_does_not_stop_focus(command):
    intent = fast_classify("end", command)

    assert intent is None or not intent.is_end


@pytest.mark.asyncio
async def test_break_end_goes_to_the_generator(generator_cls):
    generator = generator_cls(
        '{"action": "break", "parameters": {"breakType": "general"}, "confidence": 0.9}'
    )
    classifier = IntentClassifier(generator)

    intent = await classifier.classify("end", "/break")

    assert not classifier.is_fast("end", "/break")
    assert intent.action is IntentAction.BREAK
    assert not intent.is_end
    assert len(generator.calls) == 1
