import logging
import threading

from supabase import Client, create_client

from stampwallet.core.config import settings

logger = logging.getLogger(__name__)

REQUIRED_TABLES = ("wallet_passes", "device_registrations", "pass_notifications", "card_designs")

_thread_local = threading.local()


def get_client() -> Client:
    """Supabase client for the current thread.

    Sync endpoints run in FastAPI's threadpool and a shared HTTP/2 pool
    goes stale across threads, so each thread builds its own client.
    """
    client = getattr(_thread_local, "client", None)
    if client is None:
        if not settings.supabase_url or not settings.supabase_secret_key:
            raise RuntimeError(
                "Supabase credentials not configured. "
                "Set SUPABASE_URL and SUPABASE_SECRET_KEY environment variables."
            )
        client = create_client(settings.supabase_url, settings.supabase_secret_key)
        _thread_local.client = client
    return client


def reset_client() -> None:
    """Forget this thread's client; the next query reconnects."""
    _thread_local.__dict__.pop("client", None)


def get_db() -> Client:
    return get_client()


def init_db():
    """Check at startup that Supabase is reachable and the pass tables exist.

    Schema is managed by Supabase migrations; missing tables are logged, not created.
    """
    if not settings.supabase_url or not settings.supabase_secret_key:
        logger.warning("Supabase credentials not configured. Database features disabled.")
        return

    missing = []
    for table in REQUIRED_TABLES:
        try:
            get_db().table(table).select("*").limit(1).execute()
        except Exception as e:
            logger.warning(f"Table check failed for {table}: {e}")
            missing.append(table)

    if missing:
        logger.warning(f"Supabase reachable with problems; unavailable tables: {', '.join(missing)}")
    else:
        logger.info("Supabase connection verified")
