"""Proactive alerts derived from the business snapshot."""

from datetime import date
from typing import Any, Dict, List, Optional

from assistant_hub.infra.database import as_date
from assistant_hub.models.context import ConversationContext

EXPIRY_WINDOW_DAYS = 7

# Count over every active service, computed by the context assembler
EXPIRING_COUNT_KEY = "expiring_services_count"

# Preview lists with an ``expires_at`` field, for snapshots without the count
_SERVICE_LIST_KEYS = ("active_services", "expiring_services")


def _expiring_within_window(services: List[Dict[str, Any]], today: date) -> int:
    count = 0
    for service in services:
        if not isinstance(service, dict):
            continue
        try:
            expires = as_date(service.get("expires_at"))
        except ValueError:
            continue
        if expires is None:
            continue
        if 0 <= (expires - today).days <= EXPIRY_WINDOW_DAYS:
            count += 1
    return count


def _expiring_count(snapshot: Dict[str, Any], today: date) -> int:
    counted = snapshot.get(EXPIRING_COUNT_KEY)
    if isinstance(counted, int) and not isinstance(counted, bool):
        return counted
    # One list only; both keys may describe the same services
    for key in _SERVICE_LIST_KEYS:
        services = snapshot.get(key)
        if isinstance(services, list):
            return _expiring_within_window(services, today)
    return 0


def compute_alerts(context: ConversationContext, today: Optional[date] = None) -> List[str]:
    """
    Compute informational alerts for the reply.

    - one alert when the snapshot reports overdue charges
    - one alert when any active service expires within the next 7 days,
      today and the 7th day included; the assembler's count covers every
      service, preview lists are only read for snapshots built without it

    Pure function of the snapshot; alerts never trigger actions.
    """
    today = today or date.today()
    snapshot = context.business_snapshot
    alerts = []

    overdue = snapshot.get("overdue_charges") or 0
    if isinstance(overdue, (int, float)) and overdue > 0:
        alerts.append(f"You have {int(overdue)} overdue charge(s).")

    expiring = _expiring_count(snapshot, today)
    if expiring:
        alerts.append(f"{expiring} service(s) expire within the next {EXPIRY_WINDOW_DAYS} days.")

    return alerts
