"""
Scheduled jobs, meant to be invoked by cron or a platform scheduler.

Usage examples:
    python -m delivery_api.jobs notifications
    python -m delivery_api.jobs notifications --tenant 1f0c...-uuid
    python -m delivery_api.jobs reset-usage day
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import List, Optional, Sequence
from uuid import UUID

from delivery_api.core.logging import configure_logging, tenant_id_var
from delivery_api.db.session import get_async_session, tenant_context
from delivery_api.repositories.tenants import TenantRepository
from delivery_api.services.credits import CreditService
from delivery_api.services.delivery_notifications import DeliveryNotificationService, NotificationRunSummary

logger = logging.getLogger(__name__)


async def _tenant_ids(session, tenant: Optional[UUID]) -> List[UUID]:
    if tenant is not None:
        return [tenant]
    return await TenantRepository(session).list_tenant_ids()


# PUBLIC_INTERFACE
async def run_notifications(tenant: Optional[UUID] = None) -> NotificationRunSummary:
    """Run the delivery notification processor once for one tenant or for every tenant."""
    total = NotificationRunSummary()
    async for session in get_async_session():
        for tenant_id in await _tenant_ids(session, tenant):
            token = tenant_id_var.set(str(tenant_id))
            try:
                async with tenant_context(session, tenant_id):
                    summary = await DeliveryNotificationService(session).process_delivery_notifications()
            finally:
                tenant_id_var.reset(token)
            total.orders_checked += summary.orders_checked
            total.notifications_sent += summary.notifications_sent
            total.sms_sent += summary.sms_sent
            total.sms_failed += summary.sms_failed
            total.errors.extend(f"{tenant_id}/{e}" for e in summary.errors)
    return total


# PUBLIC_INTERFACE
async def run_reset_usage(period: str) -> int:
    """Zero the day, week or month usage counters of every tenant; returns rows reset."""
    reset = 0
    async for session in get_async_session():
        for tenant_id in await _tenant_ids(session, None):
            async with tenant_context(session, tenant_id):
                reset += await CreditService(session).reset_usage_counters(period)
    logger.info("Reset %s usage counters on %d ledgers", period, reset)
    return reset


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="delivery_api.jobs", description="Run scheduled jobs once.")
    sub = parser.add_subparsers(dest="job", required=True)

    notify = sub.add_parser("notifications", help="Send due delivery notification stages")
    notify.add_argument("--tenant", type=UUID, default=None, help="Only process this tenant id")

    reset = sub.add_parser("reset-usage", help="Zero credit usage counters")
    reset.add_argument("period", choices=("day", "week", "month"))
    return parser


# PUBLIC_INTERFACE
def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point; returns a process exit code."""
    configure_logging()
    args = _build_parser().parse_args(argv)

    if args.job == "notifications":
        summary = asyncio.run(run_notifications(args.tenant))
        logger.info(
            "Notifications done: %d orders, %d notifications, %d sms sent, %d sms failed, %d errors",
            summary.orders_checked,
            summary.notifications_sent,
            summary.sms_sent,
            summary.sms_failed,
            len(summary.errors),
        )
        return 1 if summary.errors else 0

    asyncio.run(run_reset_usage(args.period))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
