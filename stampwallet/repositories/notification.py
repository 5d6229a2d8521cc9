from database import get_db, with_retry

TABLE = "pass_notifications"


class NotificationRepository:
    """Sent pass notifications, used for per-pass rate limiting."""

    @staticmethod
    @with_retry()
    def count_since(pass_id: str, since_iso: str) -> int:
        db = get_db()
        result = db.table(TABLE).select("id").eq(
            "pass_id", pass_id
        ).gte("sent_at", since_iso).execute()
        return len(result.data or [])

    @staticmethod
    @with_retry()
    def record(pass_id: str, sent_at_iso: str, reason: str) -> dict:
        db = get_db()
        result = db.table(TABLE).insert({
            "pass_id": pass_id,
            "sent_at": sent_at_iso,
            "day_bucket": sent_at_iso[:10],
            "reason": reason,
        }).execute()
        return result.data[0]

    @staticmethod
    @with_retry()
    def prune(before_iso: str) -> int:
        db = get_db()
        result = db.table(TABLE).delete().lt("sent_at", before_iso).execute()
        return len(result.data or [])
