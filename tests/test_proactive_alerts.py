"""Tests for proactive alerts."""

from datetime import date, timedelta

from assistant_hub.models.context import Actor, ConversationContext, RoleTier
from assistant_hub.services.proactive_alerts import compute_alerts

TODAY = date(2025, 3, 10)


def _context(snapshot):
    return ConversationContext(
        tenant_id="tenant-1",
        actor=Actor(actor_id="customer-1", role_tier=RoleTier.END_CUSTOMER),
        business_snapshot=snapshot,
    )


def _service(days):
    return {"service": "IPTV", "expires_at": (TODAY + timedelta(days=days)).isoformat()}


class TestProactiveAlerts:
    """Alert rules over the business snapshot."""

    def test_no_alerts_for_clean_snapshot(self):
        assert compute_alerts(_context({"overdue_charges": 0, "active_services": []}), today=TODAY) == []

    def test_overdue_charges_alert(self):
        alerts = compute_alerts(_context({"overdue_charges": 2}), today=TODAY)

        assert alerts == ["You have 2 overdue charge(s)."]

    def test_expiry_window_boundaries(self):
        snapshot = {"active_services": [_service(0), _service(7), _service(8), _service(-1)]}

        alerts = compute_alerts(_context(snapshot), today=TODAY)

        assert alerts == ["2 service(s) expire within the next 7 days."]

    def test_service_expiring_in_eight_days_is_not_alerted(self):
        assert compute_alerts(_context({"active_services": [_service(8)]}), today=TODAY) == []

    def test_reseller_expiring_services_list_is_checked(self):
        snapshot = {"active_services": 4, "expiring_services": [_service(3)], "overdue_charges": 1}

        alerts = compute_alerts(_context(snapshot), today=TODAY)

        assert alerts == [
            "You have 1 overdue charge(s).",
            "1 service(s) expire within the next 7 days.",
        ]

    def test_services_without_expiry_are_ignored(self):
        snapshot = {"active_services": [{"service": "IPTV", "expires_at": None}]}

        assert compute_alerts(_context(snapshot), today=TODAY) == []

    def test_assembled_count_wins_over_preview(self):
        # Preview shows only long-expired rows; the full count still has one in the window
        stale = [_service(-30 - offset) for offset in range(5)]
        snapshot = {"active_services": stale, "expiring_services_count": 1}

        alerts = compute_alerts(_context(snapshot), today=TODAY)

        assert alerts == ["1 service(s) expire within the next 7 days."]

    def test_zero_count_ignores_preview(self):
        snapshot = {"active_services": [_service(2)], "expiring_services_count": 0}

        assert compute_alerts(_context(snapshot), today=TODAY) == []

    def test_service_listed_twice_is_counted_once(self):
        service = _service(3)
        snapshot = {"active_services": [service], "expiring_services": [service]}

        alerts = compute_alerts(_context(snapshot), today=TODAY)

        assert alerts == ["1 service(s) expire within the next 7 days."]
