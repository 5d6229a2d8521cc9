from database import get_db, with_retry

TABLE = "wallet_passes"


class WalletPassRepository:
    """Repository for wallet passes.

    Status transitions go through `update_if_status`, which only touches the
    row while it still has the expected status. Two sweeps racing on the
    same pass therefore apply each transition once.
    """

    @staticmethod
    @with_retry()
    def create(data: dict) -> dict:
        db = get_db()
        result = db.table(TABLE).insert(data).execute()
        return result.data[0]

    @staticmethod
    @with_retry()
    def get_by_id(pass_id: str) -> dict | None:
        db = get_db()
        result = db.table(TABLE).select("*").eq("id", pass_id).limit(1).execute()
        return result.data[0] if result and result.data else None

    @staticmethod
    @with_retry()
    def get_many(pass_ids: list[str]) -> list[dict]:
        if not pass_ids:
            return []
        db = get_db()
        result = db.table(TABLE).select("*").in_("id", pass_ids).execute()
        return result.data

    @staticmethod
    @with_retry()
    def update_if_status(pass_id: str, expected_status: str, changes: dict) -> dict | None:
        """Apply `changes` only if the pass still has `expected_status`.

        Returns:
            The updated row, or None if another writer got there first
        """
        db = get_db()
        result = db.table(TABLE).update(changes).eq(
            "id", pass_id
        ).eq("status", expected_status).execute()
        return result.data[0] if result and result.data else None

    @staticmethod
    @with_retry()
    def claim_expiration_notice(pass_id: str) -> bool:
        """Flip expiration_notified false -> true; True if this caller won."""
        db = get_db()
        result = db.table(TABLE).update({"expiration_notified": True}).eq(
            "id", pass_id
        ).eq("status", "expired").eq("expiration_notified", False).execute()
        return bool(result and result.data)

    @staticmethod
    @with_retry()
    def list_due_for_expiration(now_iso: str) -> list[dict]:
        """Completed passes whose scheduled expiration has passed."""
        db = get_db()
        result = db.table(TABLE).select("*").eq(
            "status", "completed"
        ).lte("scheduled_expiration_at", now_iso).execute()
        return result.data

    @staticmethod
    @with_retry()
    def list_completed_unscheduled() -> list[dict]:
        """Completed passes with no scheduled expiration (rows written before scheduling existed)."""
        db = get_db()
        result = db.table(TABLE).select("*").eq(
            "status", "completed"
        ).is_("scheduled_expiration_at", "null").execute()
        return result.data

    @staticmethod
    @with_retry()
    def list_unnotified_expired() -> list[dict]:
        db = get_db()
        result = db.table(TABLE).select("*").eq(
            "status", "expired"
        ).eq("expiration_notified", False).execute()
        return result.data

    @staticmethod
    @with_retry()
    def list_due_for_cleanup(expired_before_iso: str) -> list[dict]:
        """Expired passes past the retention window."""
        db = get_db()
        result = db.table(TABLE).select("*").eq(
            "status", "expired"
        ).lte("expired_at", expired_before_iso).execute()
        return result.data

    @staticmethod
    @with_retry()
    def list_updated_since(pass_ids: list[str], since_tag: int) -> list[dict]:
        """Non-deleted passes among `pass_ids` with update_tag > since_tag."""
        if not pass_ids:
            return []
        db = get_db()
        result = db.table(TABLE).select("id, update_tag").in_(
            "id", pass_ids
        ).gt("update_tag", since_tag).neq("status", "deleted").order("update_tag").execute()
        return result.data
