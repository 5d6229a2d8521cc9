from enum import Enum
from typing import List

from pydantic import BaseModel, Field


# ============================================
# Pass Schemas
# ============================================

class PassStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    EXPIRED = "expired"
    DELETED = "deleted"


class WalletKind(str, Enum):
    APPLE = "apple"
    GOOGLE = "google"


# ============================================
# Apple Web Service Schemas
# ============================================

class DeviceRegistrationRequest(BaseModel):
    pushToken: str = Field(..., min_length=1)


class SerialNumbersResponse(BaseModel):
    serialNumbers: List[str]
    lastUpdated: str


class WalletLogRequest(BaseModel):
    logs: List[str] = []


# ============================================
# Lifecycle Schemas
# ============================================

class SweepError(BaseModel):
    pass_id: str
    phase: str
    error: str


class SweepResult(BaseModel):
    expired: int = 0
    notified: int = 0
    cleaned: int = 0
    errors: List[SweepError] = []
    dry_run: bool = False
