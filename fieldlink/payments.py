"""
Payment cycle alert evaluator.

Classifies a site's next payment date relative to now:

- overdue:  the date has passed (day count = days overdue)
- dueSoon:  due within DUE_SOON_WINDOW_DAYS days, both ends inclusive
- current:  due later than that

Day deltas round partial days up to a whole day, so a payment due in
30 hours is "due in 2 days" and a payment one second late is already
"1 day overdue".

Two windows exist on purpose. DUE_SOON_WINDOW_DAYS drives the per-site
badge; the bulk alert list takes its own upcoming window (configurable,
DEFAULT_UPCOMING_WINDOW_DAYS by default). Do not merge them.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

logger = logging.getLogger("fieldlink.payments")

# ============================================================================
# Constants
# ============================================================================

SECONDS_PER_DAY = 86400

DUE_SOON_WINDOW_DAYS = 7
DEFAULT_UPCOMING_WINDOW_DAYS = 7

CATEGORY_OVERDUE = "overdue"
CATEGORY_DUE_SOON = "dueSoon"
CATEGORY_CURRENT = "current"

PAYMENT_CYCLES = ("monthly", "quarterly", "semi_annual", "annual")
DEFAULT_PAYMENT_CYCLE = "monthly"

_CYCLE_LABELS = {
    "monthly": "Monthly",
    "quarterly": "Quarterly",
    "semi_annual": "Semi-annual",
    "annual": "Annual",
}

Timestamp = Union[datetime, str]


@dataclass(frozen=True)
class PaymentClassification:
    """
    Payment state of one record.

    Attributes:
        category: overdue, dueSoon or current
        days: Days overdue (overdue), days until due (dueSoon), or the raw
            day delta (current, not shown by badges)
        cycle: Payment cycle of the record, for display only
    """
    category: str
    days: int
    cycle: Optional[str] = None

    @property
    def is_overdue(self) -> bool:
        return self.category == CATEGORY_OVERDUE

    @property
    def is_due_soon(self) -> bool:
        return self.category == CATEGORY_DUE_SOON


@dataclass
class PaymentAlert:
    """One site in the bulk alert list."""
    site: Dict[str, Any]
    days: int

    @property
    def site_id(self) -> Optional[str]:
        site_id = self.site.get("_id") or self.site.get("id")
        return str(site_id) if site_id is not None else None

    @property
    def name(self) -> str:
        return self.site.get("name") or ""

    @property
    def client_name(self) -> Optional[str]:
        client = self.site.get("client")
        if isinstance(client, dict):
            return client.get("name")
        return None

    @property
    def cycle(self) -> str:
        return self.site.get("paymentCycle") or DEFAULT_PAYMENT_CYCLE


@dataclass
class PaymentAlerts:
    """Bulk alert list: overdue and upcoming sites, disjoint."""
    overdue: List[PaymentAlert] = field(default_factory=list)
    upcoming: List[PaymentAlert] = field(default_factory=list)

    @property
    def has_alerts(self) -> bool:
        return bool(self.overdue or self.upcoming)


# ============================================================================
# Day arithmetic
# ============================================================================


def _to_datetime(value: Timestamp) -> datetime:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def days_until(next_payment_date: Timestamp, now: Optional[datetime] = None) -> int:
    """
    Whole days from ``now`` until ``next_payment_date``.

    Partial days count as a full day in either direction: one second in
    the future is 1, one second in the past is -1, exactly now is 0.
    """
    now = _to_datetime(now) if now is not None else datetime.now(timezone.utc)
    delta = (_to_datetime(next_payment_date) - now).total_seconds()
    if delta < 0:
        return -int(math.ceil(-delta / SECONDS_PER_DAY))
    return int(math.ceil(delta / SECONDS_PER_DAY))


# ============================================================================
# Classification
# ============================================================================


def classify(
    next_payment_date: Optional[Timestamp],
    cycle: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[PaymentClassification]:
    """
    Classify a payment date for the per-site badge.

    Args:
        next_payment_date: Next payment timestamp, or None
        cycle: Payment cycle, carried through for display only
        now: Reference time, defaults to the current UTC time

    Returns:
        PaymentClassification, or None when there is no payment date
    """
    if next_payment_date is None or next_payment_date == "":
        return None

    days = days_until(next_payment_date, now)

    if days < 0:
        return PaymentClassification(CATEGORY_OVERDUE, abs(days), cycle)
    if days <= DUE_SOON_WINDOW_DAYS:
        return PaymentClassification(CATEGORY_DUE_SOON, days, cycle)
    return PaymentClassification(CATEGORY_CURRENT, days, cycle)


def partition_alerts(
    sites: Iterable[Dict[str, Any]],
    upcoming_window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS,
    now: Optional[datetime] = None,
) -> PaymentAlerts:
    """
    Split sites into overdue and upcoming payment alerts.

    Sites without a ``nextPaymentDate``, or due later than the upcoming
    window, are left out. Overdue sites are ordered most overdue first,
    upcoming sites soonest first.

    Args:
        sites: Raw site records (``nextPaymentDate``, ``paymentCycle``, ...)
        upcoming_window_days: Inclusive window for the upcoming bucket
        now: Reference time, defaults to the current UTC time

    Returns:
        PaymentAlerts with disjoint overdue and upcoming lists
    """
    now = _to_datetime(now) if now is not None else datetime.now(timezone.utc)
    alerts = PaymentAlerts()

    for site in sites:
        next_payment_date = site.get("nextPaymentDate")
        if not next_payment_date:
            continue
        try:
            days = days_until(next_payment_date, now)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping site {site.get('_id') or site.get('id')}: bad nextPaymentDate ({e})")
            continue

        if days < 0:
            alerts.overdue.append(PaymentAlert(site=site, days=abs(days)))
        elif days <= upcoming_window_days:
            alerts.upcoming.append(PaymentAlert(site=site, days=days))

    alerts.overdue.sort(key=lambda a: a.days, reverse=True)
    alerts.upcoming.sort(key=lambda a: a.days)
    return alerts


# ============================================================================
# Labels
# ============================================================================


def cycle_label(cycle: Optional[str]) -> str:
    """Display label for a payment cycle; a missing cycle reads as monthly."""
    key = (cycle or DEFAULT_PAYMENT_CYCLE).lower()
    return _CYCLE_LABELS.get(key, cycle or "")


def badge_label(classification: Optional[PaymentClassification]) -> str:
    """
    Badge text for a classification.

    Returns:
        "Overdue (Nd)", "Due in Nd", "Up to date", or "" for no classification
    """
    if classification is None:
        return ""
    if classification.is_overdue:
        return f"Overdue ({classification.days}d)"
    if classification.is_due_soon:
        return f"Due in {classification.days}d"
    return "Up to date"
