from .connection import get_db, init_db, reset_client
from .retry import with_retry

__all__ = ["get_db", "init_db", "reset_client", "with_retry"]
