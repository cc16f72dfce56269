"""
LLM Enhancement Layer Tests

The LLM path is best-effort: every failure mode must end in the
deterministic result. The Anthropic client is exercised against
httpx.MockTransport, never the network.
"""

import asyncio
import json

import httpx
import pytest

from tests.conftest import async_test
from tracker.briefing_engine import generate_briefing
from tracker.briefing_model import Briefing, BriefingCta
from tracker.llm_provider import (
    AnthropicProvider,
    UpstreamUnavailableError,
    brief_with_fallback,
    parse_briefing,
    parse_json_payload,
    parse_suggestions,
    suggest_with_fallback,
)
from tracker.suggestion_engine import generate_suggestions
from tracker.suggestion_model import Suggestion
from tracker.task_model import Task


TASKS = [
    Task(id=1, title="Decide on Q3 pricing strategy"),
    Task(id=2, title="Research competitor pricing", parent_id=1, kind="action"),
]


# =============================================================================
# Fake providers
# =============================================================================

class FailingProvider:
    async def suggest(self, task, all_tasks, reflections):
        raise UpstreamUnavailableError("down")

    async def brief(self, all_tasks, reflections, user_name):
        raise RuntimeError("unexpected")


class SlowProvider:
    async def suggest(self, task, all_tasks, reflections):
        await asyncio.sleep(5)
        return []

    async def brief(self, all_tasks, reflections, user_name):
        await asyncio.sleep(5)


class CannedProvider:
    SUGGESTIONS = [
        Suggestion(title="Call two customers", rationale="Evidence", kind="execution"),
        Suggestion(title="Check churn data", rationale="Baseline", kind="validation"),
    ]

    async def suggest(self, task, all_tasks, reflections):
        return list(self.SUGGESTIONS)

    async def brief(self, all_tasks, reflections, user_name):
        return Briefing(greeting="Hi", headline="Today", cta=BriefingCta("Go", "Now"))


def _anthropic_reply(payload, status_code=200):
    """MockTransport answering /v1/messages with payload as the text block."""
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["request"] = request
        text = payload if isinstance(payload, str) else json.dumps(payload)
        return httpx.Response(status_code, json={"content": [{"type": "text", "text": text}]})

    return httpx.MockTransport(handler), seen


# =============================================================================
# Fallback wrappers
# =============================================================================

class TestFallback:
    """Every failure ends in the deterministic engine."""

    @async_test
    async def test_no_provider_is_deterministic(self):
        result = await suggest_with_fallback(TASKS[0], TASKS)
        assert result == generate_suggestions(TASKS[0], TASKS)

    @async_test
    async def test_provider_error_falls_back(self):
        result = await suggest_with_fallback(TASKS[0], TASKS, provider=FailingProvider())
        assert result == generate_suggestions(TASKS[0], TASKS)

    @async_test
    async def test_unexpected_error_falls_back(self):
        result = await brief_with_fallback(TASKS, provider=FailingProvider())
        assert result == generate_briefing(TASKS)

    @async_test
    async def test_timeout_falls_back(self):
        result = await suggest_with_fallback(
            TASKS[0], TASKS, provider=SlowProvider(), timeout=0.05
        )
        assert result == generate_suggestions(TASKS[0], TASKS)

    @async_test
    async def test_briefing_timeout_falls_back(self):
        result = await brief_with_fallback(TASKS, user_name="Sam", provider=SlowProvider(), timeout=0.05)
        assert result.greeting == "Good morning, Sam."

    @async_test
    async def test_provider_result_used_when_valid(self):
        result = await suggest_with_fallback(TASKS[0], TASKS, provider=CannedProvider())
        assert result == CannedProvider.SUGGESTIONS


# =============================================================================
# Response parsing
# =============================================================================

class TestParsing:
    """Untrusted JSON is validated item by item."""

    def test_strips_code_fences(self):
        assert parse_json_payload('```json\n[{"a": 1}]\n```') == [{"a": 1}]

    def test_invalid_json(self):
        with pytest.raises(UpstreamUnavailableError):
            parse_json_payload("Sure! Here are some ideas")

    def test_invalid_items_dropped(self):
        suggestions = parse_suggestions([
            {"title": "Call two customers", "rationale": "Evidence", "kind": "execution"},
            {"title": "", "rationale": "x", "kind": "execution"},
            {"title": "Bad kind", "rationale": "x", "kind": "wish"},
            {"title": "Check churn", "rationale": "Baseline", "kind": "validation"},
        ])
        assert [s.title for s in suggestions] == ["Call two customers", "Check churn"]

    def test_extra_validation_items_dropped(self):
        suggestions = parse_suggestions([
            {"title": "A", "rationale": "r", "kind": "validation"},
            {"title": "B", "rationale": "r", "kind": "validation"},
        ])
        assert [s.title for s in suggestions] == ["A"]

    def test_capped_at_four(self):
        items = [{"title": f"S{i}", "rationale": "r", "kind": "execution"} for i in range(3)]
        items.insert(0, {"title": "V", "rationale": "r", "kind": "validation"})
        items.append({"title": "S9", "rationale": "r", "kind": "review"})
        assert len(parse_suggestions(items)) == 4

    def test_zero_usable_items(self):
        with pytest.raises(UpstreamUnavailableError):
            parse_suggestions([{"nope": True}])

    def test_missing_validation(self):
        with pytest.raises(UpstreamUnavailableError):
            parse_suggestions([{"title": "A", "rationale": "r", "kind": "execution"}])

    def test_briefing_rejects_unknown_action_ids(self):
        payload = {
            "greeting": "Hi",
            "headline": "One goal today",
            "focus": [
                {"goalId": 1, "goalTitle": "Pricing", "whyNow": "w",
                 "action": {"type": "start_existing_action", "actionId": 99, "actionTitle": "x"}},
                {"goalId": 1, "goalTitle": "Pricing", "whyNow": "w",
                 "action": {"type": "start_existing_action", "actionId": 2, "actionTitle": "Research"}},
            ],
            "cta": {"label": "Go", "microcopy": "Now"},
        }
        briefing = parse_briefing(payload, TASKS)
        assert [f.action.action_id for f in briefing.focus] == [2]

    def test_briefing_create_drops_action_id(self):
        payload = {
            "greeting": "Hi",
            "headline": "h",
            "focus": [{"goalId": 1, "goalTitle": "Pricing", "whyNow": "w",
                       "action": {"type": "create_new_action", "actionId": 2, "actionTitle": "New"}}],
            "cta": {"label": "Go", "microcopy": "Now"},
        }
        assert parse_briefing(payload, TASKS).focus[0].action.action_id is None

    def test_briefing_without_valid_focus(self):
        payload = {"greeting": "Hi", "headline": "h", "focus": [{}], "cta": {}}
        with pytest.raises(UpstreamUnavailableError):
            parse_briefing(payload, TASKS)


# =============================================================================
# Anthropic client
# =============================================================================

class TestAnthropicProvider:
    """HTTP behavior against a mock transport."""

    @async_test
    async def test_suggest_request_and_parse(self):
        transport, seen = _anthropic_reply([
            {"title": "Interview 3 customers", "rationale": "Evidence", "kind": "execution"},
            {"title": "Check win rates", "rationale": "Baseline", "kind": "validation"},
        ])
        provider = AnthropicProvider(api_key="test-key", transport=transport)

        suggestions = await provider.suggest(TASKS[0], TASKS, [])

        assert [s.kind for s in suggestions] == ["execution", "validation"]
        request = seen["request"]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        assert request.headers["anthropic-version"] == "2023-06-01"
        body = json.loads(request.content)
        assert "Decide on Q3 pricing strategy" in body["messages"][0]["content"]

    @async_test
    async def test_http_error_raises_upstream(self):
        transport, _ = _anthropic_reply("[]", status_code=529)
        provider = AnthropicProvider(api_key="k", transport=transport)
        with pytest.raises(UpstreamUnavailableError):
            await provider.suggest(TASKS[0], TASKS, [])

    @async_test
    async def test_malformed_reply_falls_back(self):
        transport, _ = _anthropic_reply("I cannot help with that")
        provider = AnthropicProvider(api_key="k", transport=transport)
        result = await suggest_with_fallback(TASKS[0], TASKS, provider=provider)
        assert result == generate_suggestions(TASKS[0], TASKS)

    @async_test
    async def test_brief_parses_reply(self):
        transport, _ = _anthropic_reply({
            "greeting": "Morning",
            "headline": "One goal",
            "focus": [{"goalId": 1, "goalTitle": "Pricing", "whyNow": "Deadline",
                       "action": {"type": "start_existing_action", "actionId": 2,
                                  "actionTitle": "Research competitor pricing"}}],
            "cta": {"label": "Start your day", "microcopy": "Go"},
        })
        provider = AnthropicProvider(api_key="k", transport=transport)
        briefing = await provider.brief(TASKS, [], "Sam")
        assert briefing.focus[0].action.action_id == 2
        assert briefing.greeting == "Morning"
