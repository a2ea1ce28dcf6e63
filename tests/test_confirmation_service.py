"""Tests for the confirmation gate."""

import pytest

from assistant_hub.models.directive import Directive, DirectiveState
from assistant_hub.services.confirmation_service import (
    CANCEL,
    CONFIRM,
    classify_reply,
    get_pending,
    park,
    transition,
)

SESSION_ID = "33333333-3333-3333-3333-333333333333"


class TestClassifyReply:
    """Affirmation and negation detection."""

    @pytest.mark.parametrize("message", ["sim", "Sim!", "SIM, confirmo", "ok", "yes", "pode sim"])
    def test_affirmations(self, message):
        assert classify_reply(message) == CONFIRM

    @pytest.mark.parametrize("message", ["não", "Nao", "cancelar", "no", "esquece"])
    def test_negations(self, message):
        assert classify_reply(message) == CANCEL

    def test_other_messages_are_not_replies(self):
        assert classify_reply("quanto gastei este mês?") is None

    def test_explicit_value_wins(self):
        assert classify_reply("qualquer coisa", explicit="cancel") == CANCEL
        assert classify_reply("não", explicit="confirm") == CONFIRM


class TestPendingDirectives:
    """Parking and state transitions."""

    def test_park_and_get_pending(self, db, tenants):
        reseller = tenants["reseller"]
        directive = Directive.proposed("delete-expense", {"id": "exp-1"})

        pending_id = park(reseller, SESSION_ID, "staff-1", "expenses", directive)

        assert directive.state == DirectiveState.AWAITING_CONFIRMATION
        pending = get_pending(reseller, SESSION_ID)
        assert pending.id == pending_id
        assert pending.actor_id == "staff-1"
        assert pending.directive.type == "delete-expense"
        assert pending.directive.payload == {"id": "exp-1"}
        assert pending.directive.confirm_required is True

    def test_pending_is_tenant_scoped(self, db, tenants):
        park(tenants["reseller"], SESSION_ID, "staff-1", "expenses", Directive.proposed("cancel", {"id": "x"}))

        assert get_pending(tenants["other_reseller"], SESSION_ID) is None

    def test_new_proposal_supersedes_older_one(self, seed, tenants):
        reseller = tenants["reseller"]
        first = park(reseller, SESSION_ID, "staff-1", "expenses", Directive.proposed("cancel", {"id": "a"}))
        second = park(reseller, SESSION_ID, "staff-1", "expenses", Directive.proposed("mark-paid", {"id": "b"}))

        assert get_pending(reseller, SESSION_ID).id == second
        assert seed.rows("pending_directives", id=first)[0].state == "cancelled"

    def test_transition_happens_once(self, db, tenants):
        reseller = tenants["reseller"]
        pending_id = park(reseller, SESSION_ID, None, "expenses", Directive.proposed("cancel", {"id": "a"}))

        assert transition(reseller, pending_id, DirectiveState.AWAITING_CONFIRMATION, DirectiveState.CONFIRMED)
        assert not transition(reseller, pending_id, DirectiveState.AWAITING_CONFIRMATION, DirectiveState.CONFIRMED)
        assert get_pending(reseller, SESSION_ID) is None
