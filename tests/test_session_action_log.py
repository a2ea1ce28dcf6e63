"""Tests for the session action log."""

import json

import pytest

from assistant_hub.infra.database import load_json
from assistant_hub.infra.error_handler import RateLimitedError
from assistant_hub.logging.event_logger import log_directive, log_event, log_llm_call
from assistant_hub.logging.session_action_log import count_actions, record, remember_exchange
from assistant_hub.models.directive import ActionResult, Directive, DirectiveState

SESSION_ID = "22222222-2222-2222-2222-222222222222"


class TestSessionActionLog:
    """Audit rows and the per-session counter."""

    @pytest.mark.asyncio
    async def test_record_creates_session_and_counts(self, seed, tenants):
        reseller = tenants["reseller"]
        directive = Directive.proposed("create-expense", {"description": "Aluguel", "amount": 1500})

        await record(SESSION_ID, reseller, "staff-1", directive, ActionResult(True, "created"))
        await record(SESSION_ID, reseller, "staff-1", directive, ActionResult(False, "failed"))

        assert count_actions(reseller, SESSION_ID) == 2
        actions = seed.rows("chatbot_actions", session_id=SESSION_ID)
        assert len(actions) == 2
        assert {a.success for a in actions} == {True, False}
        stored = actions[0].action_data
        assert (json.loads(stored) if isinstance(stored, str) else stored)["description"] == "Aluguel"

    @pytest.mark.asyncio
    async def test_record_without_session_only_writes_action(self, seed, tenants):
        directive = Directive.proposed("show-plans", {})

        await record(None, tenants["reseller"], None, directive, ActionResult(True, "plans"))

        assert len(seed.rows("chatbot_actions")) == 1
        assert seed.rows("chatbot_sessions") == []

    @pytest.mark.asyncio
    async def test_counter_is_per_tenant(self, tenants):
        directive = Directive.proposed("show-plans", {})

        await record(SESSION_ID, tenants["reseller"], None, directive, ActionResult(True, "plans"))

        assert count_actions(tenants["other_reseller"], SESSION_ID) == 0

    def test_count_for_unknown_session_is_zero(self, tenants):
        assert count_actions(tenants["reseller"], SESSION_ID) == 0

    @pytest.mark.asyncio
    async def test_remember_exchange_keeps_latest_pair(self, seed, tenants):
        reseller = tenants["reseller"]

        remember_exchange(reseller, SESSION_ID, "staff-1", "Oi", "Olá!")
        remember_exchange(reseller, SESSION_ID, "staff-1", "Quanto devo?", "R$ 10.00")

        row = seed.rows("chatbot_sessions", id=SESSION_ID)[0]
        assert (row.last_question, row.last_answer) == ("Quanto devo?", "R$ 10.00")
        assert row.total_actions == 0


class TestEventLogger:
    """Pipeline events."""

    @pytest.mark.asyncio
    async def test_log_event(self, seed, tenants):
        await log_event(
            tenant_id=tenants["reseller"],
            event_type="llm_call_completed",
            provider="gemini",
            latency_ms=120,
            payload={"endpoint": "expenses"},
            session_id=SESSION_ID,
        )

        row = seed.rows("event_logs")[0]
        assert row.event_type == "llm_call_completed"
        assert row.status == "success"
        assert load_json(row.payload) == {"endpoint": "expenses"}

    @pytest.mark.asyncio
    async def test_failed_llm_call(self, seed, tenants):
        error = RateLimitedError("gemini rate limit exceeded.", provider="gemini")

        await log_llm_call(tenants["reseller"], "gemini", "chat", latency_ms=40, error=error)

        row = seed.rows("event_logs")[0]
        assert row.event_type == "llm_call_failed"
        assert row.status == "failure"
        assert load_json(row.payload) == {
            "endpoint": "chat",
            "category": "rate_limit",
            "error": "gemini rate limit exceeded.",
        }

    @pytest.mark.asyncio
    async def test_directive_events_follow_state(self, seed, tenants):
        directive = Directive(type="delete-expense", payload={"id": "x"}, confirm_required=True)
        directive.state = DirectiveState.AWAITING_CONFIRMATION
        await log_directive(tenants["reseller"], directive, session_id=SESSION_ID)

        directive.state = DirectiveState.EXECUTED
        await log_directive(
            tenants["reseller"], directive, result=ActionResult(False, "Expense not found."), session_id=SESSION_ID,
        )

        rows = sorted(seed.rows("event_logs"), key=lambda row: row.event_type)
        assert [(row.event_type, row.status) for row in rows] == [
            ("directive_executed", "failure"),
            ("directive_proposed", "success"),
        ]
        assert load_json(rows[0].payload)["message"] == "Expense not found."
