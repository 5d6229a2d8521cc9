from database import get_db, with_retry

TABLE = "device_registrations"


class DeviceRepository:
    """Repository for Apple Wallet device registrations.

    One row per (device_id, pass_id); a device may hold many passes and a
    pass may be installed on many devices.
    """

    @staticmethod
    @with_retry()
    def get(device_id: str, pass_id: str) -> dict | None:
        db = get_db()
        result = db.table(TABLE).select("*").eq(
            "device_id", device_id
        ).eq("pass_id", pass_id).limit(1).execute()
        return result.data[0] if result and result.data else None

    @staticmethod
    @with_retry()
    def register(device_id: str, pass_id: str, push_token: str, now_iso: str) -> bool:
        """Register a device for a pass.

        Repeat registrations keep registered_at and refresh the push token.

        Returns:
            True if a new registration was created
        """
        db = get_db()
        existing = db.table(TABLE).select("device_id").eq(
            "device_id", device_id
        ).eq("pass_id", pass_id).limit(1).execute()

        if existing.data:
            db.table(TABLE).update({
                "push_token": push_token,
                "last_checked_at": now_iso,
            }).eq("device_id", device_id).eq("pass_id", pass_id).execute()
            return False

        db.table(TABLE).insert({
            "device_id": device_id,
            "pass_id": pass_id,
            "push_token": push_token,
            "registered_at": now_iso,
            "last_checked_at": now_iso,
        }).execute()
        return True

    @staticmethod
    @with_retry()
    def unregister(device_id: str, pass_id: str) -> bool:
        """Remove the registration row only; the pass is untouched."""
        db = get_db()
        result = db.table(TABLE).delete().eq(
            "device_id", device_id
        ).eq("pass_id", pass_id).execute()
        return bool(result and result.data)

    @staticmethod
    @with_retry()
    def get_pass_ids_for_device(device_id: str) -> list[str]:
        db = get_db()
        result = db.table(TABLE).select("pass_id").eq("device_id", device_id).execute()
        return [row["pass_id"] for row in result.data]

    @staticmethod
    @with_retry()
    def get_push_tokens(pass_id: str) -> list[str]:
        """Distinct push tokens of devices holding a pass."""
        db = get_db()
        result = db.table(TABLE).select("push_token").eq(
            "pass_id", pass_id
        ).not_.is_("push_token", "null").execute()
        tokens = [row["push_token"] for row in result.data if row.get("push_token")]
        return list(dict.fromkeys(tokens))

    @staticmethod
    @with_retry()
    def touch_last_checked(device_id: str, now_iso: str) -> None:
        db = get_db()
        db.table(TABLE).update({"last_checked_at": now_iso}).eq("device_id", device_id).execute()

    @staticmethod
    @with_retry()
    def delete_for_pass(pass_id: str) -> int:
        db = get_db()
        result = db.table(TABLE).delete().eq("pass_id", pass_id).execute()
        return len(result.data or [])

    @staticmethod
    @with_retry()
    def delete_by_push_token(push_token: str) -> int:
        """Drop every registration using a token APNs reported as invalid."""
        db = get_db()
        result = db.table(TABLE).delete().eq("push_token", push_token).execute()
        return len(result.data or [])
