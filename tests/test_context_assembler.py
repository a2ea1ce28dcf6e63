"""Tests for the context assembler against a real (SQLite) database."""

import uuid
from datetime import date, datetime, timedelta

import pytest

from assistant_hub.models.context import RoleTier
from assistant_hub.models.tenant import TenantAIConfig
from assistant_hub.services.context_assembler import assemble
from assistant_hub.services.proactive_alerts import compute_alerts

TODAY = date(2025, 3, 10)


@pytest.fixture
def reseller_data(seed, tenants):
    """Customers, services and charges for the reseller, plus noise in a sibling tenant."""
    reseller = tenants["reseller"]
    ana = seed.add("customers", tenant_id=reseller, full_name="Ana Souza", whatsapp="11999990000")
    bruno = seed.add("customers", tenant_id=reseller, full_name="Bruno Lima")

    seed.add(
        "customer_items", tenant_id=reseller, customer_id=ana, product_name="IPTV", plan_name="Premium",
        price=49.9, status="active", expires_at=date(2025, 3, 13),
    )
    seed.add(
        "customer_charges", tenant_id=reseller, customer_id=ana, description="Fevereiro",
        amount=49.9, due_date=date(2025, 3, 9), status="pending",
    )
    seed.add(
        "customer_charges", tenant_id=reseller, customer_id=ana, description="Março",
        amount=89.9, due_date=date(2025, 3, 15), status="pending",
    )
    seed.add(
        "customer_charges", tenant_id=reseller, customer_id=ana, description="Janeiro",
        amount=49.9, due_date=date(2025, 3, 1), status="paid", paid_at=datetime(2025, 3, 5, 12, 0),
    )
    seed.add(
        "customer_charges", tenant_id=reseller, customer_id=bruno, description="Março",
        amount=30.0, due_date=TODAY, status="pending",
    )
    seed.add("referral_links", tenant_id=reseller, customer_id=ana, code="ANA10", balance=25.0, total_referrals=2)

    other = tenants["other_reseller"]
    carla = seed.add("customers", tenant_id=other, full_name="Carla Dias")
    seed.add(
        "customer_charges", tenant_id=other, customer_id=carla, description="Março",
        amount=999.0, due_date=date(2025, 3, 1), status="pending",
    )
    return {"ana": ana, "bruno": bruno, "carla": carla}


class TestResellerContext:
    """Reseller snapshot."""

    def test_reseller_figures(self, tenants, reseller_data):
        context = assemble(tenants["reseller"], "staff-1", RoleTier.RESELLER, today=TODAY)
        snapshot = context.business_snapshot

        assert snapshot["total_customers"] == 2
        assert snapshot["active_services"] == 1
        assert snapshot["overdue_charges"] == 1
        assert snapshot["due_today"] == 1
        assert snapshot["paid_this_month"] == 1
        assert snapshot["revenue_this_month"] == 49.9
        assert snapshot["pending_amount"] == round(49.9 + 89.9 + 30.0, 2)
        assert snapshot["expiring_services"] == [
            {"customer": "Ana Souza", "service": "IPTV", "expires_at": "2025-03-13"}
        ]
        assert snapshot["expiring_services_count"] == 1

    def test_other_tenant_rows_are_invisible(self, tenants, reseller_data):
        context = assemble(tenants["other_reseller"], "staff-2", RoleTier.RESELLER, today=TODAY)
        snapshot = context.business_snapshot

        assert snapshot["total_customers"] == 1
        assert snapshot["pending_amount"] == 999.0
        assert snapshot["expiring_services"] == []

    def test_staff_context_includes_expenses(self, seed, tenants, reseller_data):
        reseller = tenants["reseller"]
        rent = seed.add("expense_categories", tenant_id=reseller, name="Rent")
        seed.add("expense_categories", tenant_id=reseller, name="Old", is_active=False)
        seed.add(
            "expenses", tenant_id=reseller, category_id=rent, description="Aluguel",
            amount=1500.0, due_date=date(2025, 3, 20), status="pending",
        )
        seed.add(
            "expenses", tenant_id=reseller, description="Internet",
            amount=120.0, due_date=date(2025, 3, 1), status="pending",
        )
        seed.add(
            "expenses", tenant_id=reseller, description="Luz",
            amount=200.0, due_date=date(2025, 3, 2), status="paid",
        )
        seed.add(
            "expenses", tenant_id=tenants["other_reseller"], description="Outro",
            amount=5000.0, due_date=date(2025, 3, 20), status="pending",
        )

        snapshot = assemble(reseller, "staff-1", RoleTier.RESELLER, today=TODAY).business_snapshot

        assert snapshot["expenses_pending_count"] == 1
        assert snapshot["expenses_overdue_count"] == 1
        assert snapshot["expenses_pending"][0]["description"] == "Aluguel"
        assert snapshot["expenses_pending"][0]["category"] == "Rent"
        assert snapshot["expenses_overdue"][0]["description"] == "Internet"
        assert snapshot["expenses_month_total"] == 1820.0
        assert snapshot["expenses_month_paid"] == 200.0
        assert snapshot["expenses_month_pending"] == 1620.0
        assert snapshot["expense_categories"] == ["Rent"]


class TestEndCustomerContext:
    """End-customer snapshot is limited to the customer's own rows."""

    def test_customer_figures(self, tenants, reseller_data):
        context = assemble(tenants["reseller"], reseller_data["ana"], RoleTier.END_CUSTOMER, today=TODAY)
        snapshot = context.business_snapshot

        assert context.actor.display_name == "Ana Souza"
        assert snapshot["services_count"] == 1
        assert snapshot["plan_name"] == "Premium"
        assert snapshot["next_due_date"] == "2025-03-15"
        assert snapshot["next_due_amount"] == 89.9
        assert snapshot["days_until_due"] == 5
        assert snapshot["pending_charges"] == 2
        assert snapshot["overdue_charges"] == 1
        assert snapshot["overdue_amount"] == 49.9
        assert snapshot["referral_balance"] == 25.0
        assert snapshot["total_referrals"] == 2
        assert snapshot["expiring_services_count"] == 1
        assert "expenses_pending" not in snapshot

    def test_missing_customer_record_gives_zero_figures(self, tenants, reseller_data):
        context = assemble(tenants["reseller"], str(uuid.uuid4()), RoleTier.END_CUSTOMER, today=TODAY)
        snapshot = context.business_snapshot

        assert context.actor.display_name is None
        assert snapshot["services_count"] == 0
        assert snapshot["overdue_charges"] == 0
        assert snapshot["next_due_date"] is None
        assert snapshot["active_services"] == []
        assert snapshot["expiring_services_count"] == 0

    def test_customer_of_another_tenant_is_not_found(self, tenants, reseller_data):
        context = assemble(tenants["reseller"], reseller_data["carla"], RoleTier.END_CUSTOMER, today=TODAY)

        assert context.business_snapshot["pending_charges"] == 0
        assert context.actor.display_name is None


class TestUpperTierContext:
    """Operator and organization admin snapshots."""

    def test_operator_figures(self, seed, tenants):
        operator, admin = tenants["operator"], tenants["admin"]
        seed.add(
            "payments", seller_tenant_id=operator, buyer_tenant_id=admin, amount=300.0,
            status="paid", due_date=date(2025, 3, 1), paid_at=datetime(2025, 3, 2, 9, 0),
        )
        seed.add(
            "payments", seller_tenant_id=operator, buyer_tenant_id=admin, amount=300.0,
            status="pending", due_date=date(2025, 2, 1),
        )

        snapshot = assemble(operator, "root", RoleTier.OPERATOR, today=TODAY).business_snapshot

        assert snapshot["total_admins"] == 1
        assert snapshot["revenue_this_month"] == 300.0
        assert snapshot["defaulting_admins"] == 1

    def test_org_admin_figures(self, seed, tenants):
        admin = tenants["admin"]
        seed.add(
            "payments", seller_tenant_id=admin, buyer_tenant_id=tenants["reseller"], amount=80.0,
            status="pending", due_date=date(2025, 3, 1),
        )

        snapshot = assemble(admin, "admin-user", RoleTier.ORG_ADMIN, today=TODAY).business_snapshot

        assert snapshot["total_resellers"] == 2
        assert snapshot["overdue_charges"] == 1
        assert snapshot["revenue_this_month"] == 0.0


class TestKnowledgeAndSettings:
    """Knowledge base, learned answers and tenant-provided text."""

    def test_knowledge_base_and_learned_answers(self, seed, tenants):
        reseller = tenants["reseller"]
        seed.add("chatbot_knowledge_base", tenant_id=reseller, question="Tem fidelidade?", answer="Não.", priority=1)
        seed.add(
            "chatbot_knowledge_base", tenant_id=reseller, entry_type="document",
            title="Política de reembolso", content="Reembolso em até 7 dias.", priority=2,
        )
        seed.add("chatbot_knowledge_base", tenant_id=reseller, question="Inativa?", answer="Sim.", is_active=False)
        seed.add(
            "chatbot_knowledge_base", tenant_id=tenants["other_reseller"], question="Segredo?", answer="Outro tenant.",
        )
        seed.add(
            "chatbot_sessions", tenant_id=reseller, rating=5,
            last_question="Como pago?", last_answer="Pelo link de pagamento.",
        )

        context = assemble(reseller, "staff-1", RoleTier.RESELLER, today=TODAY)
        questions = [entry.question for entry in context.knowledge_base]

        assert questions == ["[Document] Política de reembolso", "Tem fidelidade?", "Como pago?"]

    def test_personality_and_description_come_from_config(self, tenants):
        ai_config = TenantAIConfig(
            tenant_id=tenants["reseller"], provider="gemini", model="", max_tokens=800, api_key="k",
            personality="Seja simpático.", business_context="Loja de planos.",
        )

        context = assemble(
            tenants["reseller"], "staff-1", RoleTier.RESELLER, ai_config=ai_config,
            business_hours="9h-18h", menu_options=[{"id": "a", "label": "A", "action": "list-customers"}],
            today=TODAY,
        )

        assert context.personality_text == "Seja simpático."
        assert context.business_description == "Loja de planos."
        assert context.business_hours == "9h-18h"
        assert context.menu_options[0]["action"] == "list-customers"


class TestExpiryWindow:
    """Expiring services are counted over every row, not the preview."""

    def test_stale_services_do_not_hide_upcoming_expiry(self, seed, tenants):
        reseller = tenants["reseller"]
        ana = seed.add("customers", tenant_id=reseller, full_name="Ana Souza")
        for offset in range(5):
            seed.add(
                "customer_items", tenant_id=reseller, customer_id=ana, product_name=f"old{offset}",
                status="active", expires_at=TODAY - timedelta(days=30 + offset),
            )
        seed.add(
            "customer_items", tenant_id=reseller, customer_id=ana, product_name="IPTV",
            status="active", expires_at=TODAY + timedelta(days=3),
        )

        context = assemble(reseller, ana, RoleTier.END_CUSTOMER, today=TODAY)

        assert len(context.business_snapshot["active_services"]) == 5
        assert "IPTV" not in [s["service"] for s in context.business_snapshot["active_services"]]
        assert context.business_snapshot["expiring_services_count"] == 1
        assert compute_alerts(context, today=TODAY) == ["1 service(s) expire within the next 7 days."]

    def test_reseller_count_is_not_capped_by_preview(self, seed, tenants):
        reseller = tenants["reseller"]
        ana = seed.add("customers", tenant_id=reseller, full_name="Ana Souza")
        for offset in range(8):
            seed.add(
                "customer_items", tenant_id=reseller, customer_id=ana, product_name=f"plan{offset}",
                status="active", expires_at=TODAY + timedelta(days=offset),
            )
        seed.add(
            "customer_items", tenant_id=reseller, customer_id=ana, product_name="later",
            status="active", expires_at=TODAY + timedelta(days=8),
        )

        context = assemble(reseller, "staff-1", RoleTier.RESELLER, today=TODAY)

        assert len(context.business_snapshot["expiring_services"]) == 5
        assert context.business_snapshot["expiring_services_count"] == 8
        assert compute_alerts(context, today=TODAY) == ["8 service(s) expire within the next 7 days."]
