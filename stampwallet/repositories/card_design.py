from database import get_db, with_retry


class CardDesignRepository:
    """Read-only access to offer card designs (managed elsewhere)."""

    @staticmethod
    @with_retry()
    def get_for_offer(offer_id: str) -> dict | None:
        db = get_db()
        result = db.table("card_designs").select("*").eq("offer_id", offer_id).limit(1).execute()
        return result.data[0] if result and result.data else None
