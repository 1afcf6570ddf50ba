"""
Admin analytics report over users, subscriptions and payments.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from retailiq.db import Database, parse_timestamp
from retailiq.logger import get_logger

logger = get_logger(__name__)

TIME_RANGES = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
DEFAULT_TIME_RANGE = "30d"


def months_between(start: datetime, end: datetime) -> List[datetime]:
    """First day of every month from start's month through end's month."""
    current = start.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    months = []
    while current <= end:
        months.append(current)
        current = current.replace(year=current.year + 1, month=1) if current.month == 12 else current.replace(month=current.month + 1)
    return months


def month_label(month: datetime) -> str:
    return month.strftime("%b %Y")


def _in_range(row: dict, start: datetime, end: datetime) -> bool:
    created = parse_timestamp(row.get("created_at"))
    return created is not None and start <= created <= end


def _by_month(rows: Iterable[dict], months: List[datetime], value=lambda row: 1) -> Dict[str, float]:
    totals = {month_label(m): 0 for m in months}
    for row in rows:
        created = parse_timestamp(row.get("created_at"))
        if created is None:
            continue
        label = month_label(created)
        if label in totals:
            totals[label] += value(row)
    return totals


class AnalyticsService:
    """Builds the admin dashboard report."""

    def __init__(self, database: Database) -> None:
        self.db = database

    def generate_report(
        self,
        *,
        time_range: str = DEFAULT_TIME_RANGE,
        include_users: bool = True,
        include_subscriptions: bool = True,
        include_payments: bool = True,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or datetime.now(timezone.utc)
        start = now - timedelta(days=TIME_RANGES.get(time_range, TIME_RANGES[DEFAULT_TIME_RANGE]))
        months = months_between(start, now)

        report: dict = {"generated_at": now.isoformat(), "time_range": time_range, "metrics": {}}

        if include_users:
            users = self.db.fetch_all("SELECT id, role, status, is_banned, created_at FROM profiles")
            report["metrics"]["users"] = {
                "total": len(users),
                "new_in_period": sum(1 for u in users if _in_range(u, start, now)),
                "active": sum(1 for u in users if u.get("status") == "active" and not u.get("is_banned")),
                "by_role": dict(Counter(u.get("role") for u in users)),
                "growth_by_month": _by_month(users, months),
            }

        if include_subscriptions:
            subscriptions = self.db.fetch_all("SELECT status, subscription_tier, created_at FROM user_subscriptions")
            report["metrics"]["subscriptions"] = {
                "total": len(subscriptions),
                "new_in_period": sum(1 for s in subscriptions if _in_range(s, start, now)),
                "active": sum(1 for s in subscriptions if s.get("status") == "active"),
                "by_tier": dict(Counter(s.get("subscription_tier") for s in subscriptions)),
                "by_status": dict(Counter(s.get("status") for s in subscriptions)),
            }

        if include_payments:
            payments = self.db.fetch_all("SELECT amount, created_at FROM payments")
            period = [p for p in payments if _in_range(p, start, now)]
            report["metrics"]["payments"] = {
                "total_count": len(payments),
                "period_count": len(period),
                "total_revenue": sum(p.get("amount") or 0 for p in payments),
                "period_revenue": sum(p.get("amount") or 0 for p in period),
                "revenue_by_month": _by_month(payments, months, value=lambda p: p.get("amount") or 0),
            }

        logger.info("Generated analytics report for %s", time_range)
        return report
