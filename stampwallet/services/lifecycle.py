"""
Pass lifecycle: active -> completed -> expired -> deleted.

Every transition is a conditional update on the current status, so
concurrent sweeps (or a sweep racing a progress update) apply each
transition once. Device notifications go out after the transition is
committed; a failed push never rolls a transition back.
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Callable

from stampwallet.core.timestamps import parse_datetime, to_iso, utc_now
from stampwallet.domain.errors import PassNotFoundError
from stampwallet.domain.schemas import PassStatus, SweepError, SweepResult, WalletKind
from stampwallet.repositories.device import DeviceRepository
from stampwallet.repositories.notification import NotificationRepository
from stampwallet.repositories.wallet_pass import WalletPassRepository
from stampwallet.services.apns import APNsClient, DispatchReport

logger = logging.getLogger(__name__)

RATE_WINDOW = timedelta(days=1)
NOTIFICATION_HISTORY = timedelta(days=30)


def next_update_tag(previous: int | None, now: datetime) -> int:
    """Strictly increasing per pass, and comparable across passes (microseconds)."""
    stamp = int(now.timestamp() * 1_000_000)
    return max((previous or 0) + 1, stamp)


class PassLifecycleManager:
    def __init__(
        self,
        push_client: APNsClient | None = None,
        grace_days: int = 30,
        retention_days: int = 90,
        daily_notification_limit: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.push_client = push_client
        self.grace_days = grace_days
        self.retention_days = retention_days
        self.daily_notification_limit = daily_notification_limit
        self.clock = clock

    # ===== Progress =====

    def issue_pass(
        self,
        customer_id: str,
        offer_id: str,
        required_count: int,
        wallet_kind: WalletKind = WalletKind.APPLE,
    ) -> dict:
        """Create an active pass with a fresh authentication token."""
        now = self.clock()
        wallet_pass = WalletPassRepository.create({
            "id": str(uuid.uuid4()),
            "customer_id": customer_id,
            "offer_id": offer_id,
            "wallet_kind": WalletKind(wallet_kind).value,
            "status": PassStatus.ACTIVE.value,
            "earned_count": 0,
            "required_count": max(1, int(required_count)),
            "authentication_token": secrets.token_hex(16),
            "update_tag": next_update_tag(0, now),
            "expiration_notified": False,
            "last_updated_at": to_iso(now),
            "created_at": to_iso(now),
        })
        logger.info(f"Issued pass {wallet_pass['id'][:8]}... for customer {customer_id[:8]}...")
        return wallet_pass

    async def record_progress(self, pass_id: str, earned_count: int) -> dict:
        """
        Set a pass's earned stamp count.

        Reaching the required count completes the pass and schedules its
        expiration `grace_days` later. Progress on passes that are no longer
        active is ignored.

        Returns:
            The pass row after the update (or unchanged if ignored)
        """
        wallet_pass = WalletPassRepository.get_by_id(pass_id)
        if not wallet_pass:
            raise PassNotFoundError(pass_id)

        if wallet_pass["status"] != PassStatus.ACTIVE.value:
            logger.info(f"Ignoring progress for pass {pass_id[:8]}... in status {wallet_pass['status']}")
            return wallet_pass

        now = self.clock()
        required = wallet_pass["required_count"]
        earned = max(0, min(int(earned_count), required))

        changes = {
            "earned_count": earned,
            "update_tag": next_update_tag(wallet_pass.get("update_tag"), now),
            "last_updated_at": to_iso(now),
        }
        completed = earned >= required
        if completed:
            changes.update({
                "status": PassStatus.COMPLETED.value,
                "completed_at": to_iso(now),
                "scheduled_expiration_at": to_iso(now + timedelta(days=self.grace_days)),
            })

        updated = WalletPassRepository.update_if_status(pass_id, PassStatus.ACTIVE.value, changes)
        if updated is None:
            logger.warning(f"Pass {pass_id[:8]}... changed status concurrently; progress not applied")
            return WalletPassRepository.get_by_id(pass_id) or wallet_pass

        if completed:
            logger.info(f"Pass {pass_id[:8]}... completed; expires {changes['scheduled_expiration_at']}")

        try:
            await self.notify_pass_update(pass_id, "completed" if completed else "progress")
        except Exception as e:
            logger.warning(f"Update notification failed for pass {pass_id[:8]}...: {e}")
        return updated

    # ===== Notifications =====

    def _rate_limited(self, pass_id: str, now: datetime) -> bool:
        sent = NotificationRepository.count_since(pass_id, to_iso(now - RATE_WINDOW))
        return sent >= self.daily_notification_limit

    async def _dispatch(self, pass_id: str, reason: str, now: datetime) -> DispatchReport | None:
        push_tokens = DeviceRepository.get_push_tokens(pass_id)
        if not push_tokens or self.push_client is None:
            return None

        NotificationRepository.record(pass_id, to_iso(now), reason)
        report = await self.push_client.notify_all(push_tokens)
        logger.info(
            f"Notified pass {pass_id[:8]}... ({reason}): {report.delivered} delivered, {report.failed} failed"
        )

        for token in report.invalid_tokens:
            removed = DeviceRepository.delete_by_push_token(token)
            logger.info(f"Pruned {removed} registration(s) for invalid token {token[:20]}...")
        return report

    async def notify_pass_update(self, pass_id: str, reason: str) -> DispatchReport | None:
        """Push a pass update to its devices unless the daily limit is reached."""
        now = self.clock()
        if self._rate_limited(pass_id, now):
            logger.info(f"Daily notification limit reached for pass {pass_id[:8]}...; skipping {reason}")
            return None
        return await self._dispatch(pass_id, reason, now)

    # ===== Sweep =====

    def _expiration_candidates(self, now: datetime, grace_days: int) -> list[dict]:
        due = WalletPassRepository.list_due_for_expiration(to_iso(now))
        seen = {row["id"] for row in due}
        cutoff = now - timedelta(days=grace_days)
        for row in WalletPassRepository.list_completed_unscheduled():
            # Unscheduled rows count the grace period from completion, else from the last update
            completed_at = parse_datetime(row.get("completed_at") or row.get("last_updated_at"))
            if row["id"] not in seen and completed_at is not None and completed_at <= cutoff:
                due.append(row)
        return due

    def _expire_phase(self, now: datetime, grace_days: int, dry_run: bool, result: SweepResult) -> list[dict]:
        would_expire = []
        for wallet_pass in self._expiration_candidates(now, grace_days):
            pass_id = wallet_pass["id"]
            try:
                if dry_run:
                    result.expired += 1
                    would_expire.append(wallet_pass)
                    continue

                updated = WalletPassRepository.update_if_status(pass_id, PassStatus.COMPLETED.value, {
                    "status": PassStatus.EXPIRED.value,
                    "expired_at": to_iso(now),
                    "update_tag": next_update_tag(wallet_pass.get("update_tag"), now),
                    "last_updated_at": to_iso(now),
                })
                if updated:
                    result.expired += 1
                    logger.info(f"Expired pass {pass_id[:8]}...")
            except Exception as e:
                logger.error(f"Failed to expire pass {pass_id}: {e}")
                result.errors.append(SweepError(pass_id=pass_id, phase="expire", error=str(e)))
        return would_expire

    async def _notify_phase(self, now: datetime, dry_run: bool, result: SweepResult, pending: list[dict]) -> None:
        candidates = WalletPassRepository.list_unnotified_expired() + pending
        for wallet_pass in candidates:
            pass_id = wallet_pass["id"]
            try:
                if self._rate_limited(pass_id, now):
                    logger.info(f"Deferring expiration notice for pass {pass_id[:8]}...: daily limit reached")
                    continue

                if dry_run:
                    result.notified += 1
                    continue

                if not WalletPassRepository.claim_expiration_notice(pass_id):
                    continue

                await self._dispatch(pass_id, "expired", now)
                result.notified += 1
            except Exception as e:
                logger.error(f"Failed to notify expiration for pass {pass_id}: {e}")
                result.errors.append(SweepError(pass_id=pass_id, phase="notify", error=str(e)))

    def _cleanup_phase(self, now: datetime, retention_days: int, dry_run: bool, result: SweepResult) -> None:
        cutoff = now - timedelta(days=retention_days)
        for wallet_pass in WalletPassRepository.list_due_for_cleanup(to_iso(cutoff)):
            pass_id = wallet_pass["id"]
            try:
                expired_at = parse_datetime(wallet_pass.get("expired_at"))
                if expired_at is None or expired_at > cutoff:
                    continue

                if dry_run:
                    result.cleaned += 1
                    continue

                # Registrations first: the pass stays expired until they are gone
                removed = DeviceRepository.delete_for_pass(pass_id)
                updated = WalletPassRepository.update_if_status(pass_id, PassStatus.EXPIRED.value, {
                    "status": PassStatus.DELETED.value,
                    "deleted_at": to_iso(now),
                    "update_tag": next_update_tag(wallet_pass.get("update_tag"), now),
                    "last_updated_at": to_iso(now),
                })
                if updated:
                    result.cleaned += 1
                    logger.info(f"Deleted pass {pass_id[:8]}... and {removed} device registration(s)")
            except Exception as e:
                logger.error(f"Failed to clean up pass {pass_id}: {e}")
                result.errors.append(SweepError(pass_id=pass_id, phase="cleanup", error=str(e)))

    async def sweep(
        self,
        grace_days: int | None = None,
        retention_days: int | None = None,
        dry_run: bool = False,
    ) -> SweepResult:
        """
        Run one lifecycle sweep.

        1. Expire completed passes whose grace period has ended.
        2. Send the one-time expiration notice for expired passes.
        3. Soft-delete expired passes past retention and drop their devices.

        Per-pass failures are collected in `errors`; the sweep carries on.
        With `dry_run` nothing is written and the counts report what would
        have happened. Running twice in a row changes nothing the second time.
        """
        grace_days = self.grace_days if grace_days is None else grace_days
        retention_days = self.retention_days if retention_days is None else retention_days
        now = self.clock()
        result = SweepResult(dry_run=dry_run)

        logger.info(
            f"Starting pass sweep (grace={grace_days}d, retention={retention_days}d, dry_run={dry_run})"
        )

        pending = self._expire_phase(now, grace_days, dry_run, result)
        await self._notify_phase(now, dry_run, result, pending)
        self._cleanup_phase(now, retention_days, dry_run, result)

        if not dry_run:
            try:
                NotificationRepository.prune(to_iso(now - NOTIFICATION_HISTORY))
            except Exception as e:
                logger.warning(f"Failed to prune notification history: {e}")

        logger.info(
            f"Sweep finished: expired={result.expired}, notified={result.notified}, "
            f"cleaned={result.cleaned}, errors={len(result.errors)}"
        )
        return result


def create_lifecycle_manager() -> PassLifecycleManager:
    """Factory function to create PassLifecycleManager from settings."""
    from stampwallet.core.config import settings
    from stampwallet.services.apns import create_apns_client

    return PassLifecycleManager(
        push_client=create_apns_client(),
        grace_days=settings.pass_grace_days,
        retention_days=settings.pass_retention_days,
        daily_notification_limit=settings.notification_daily_limit,
    )
