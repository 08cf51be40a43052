"""Pydantic models and state records shared across the service layer."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Union

from pydantic import BaseModel, ConfigDict, Field


class PoolEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    member_number: int
    is_available: bool
    assigned_to: str | None = None
    assigned_at: datetime | None = None


class Profile(BaseModel):
    id: str
    email: str | None = None
    subscription_started_at: datetime | None = None
    member_number: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NewProfile(BaseModel):
    id: str
    email: str | None = None
    name: str | None = None
    profile_image_url: str | None = None


class EntitlementSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str | None = None
    active_entitlements: frozenset[str] = Field(default_factory=frozenset)

    def is_active(self, entitlement_id: str) -> bool:
        return entitlement_id in self.active_entitlements


class Package(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    product_id: str
    price_label: str | None = None


class Offering(BaseModel):
    identifier: str
    packages: list[Package] = Field(default_factory=list)


class Catalog(BaseModel):
    current: Offering | None = None
    all: dict[str, Offering] = Field(default_factory=dict)


class PurchaseResult(BaseModel):
    cancelled: bool
    snapshot: EntitlementSnapshot | None = None


@dataclass(frozen=True, slots=True)
class UserSession:
    user_id: str


@dataclass(frozen=True, slots=True)
class Reservation:
    number: int
    started_at: float


class AvailabilityStatus(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    INVALID_RANGE = "invalid_range"


@dataclass(frozen=True, slots=True)
class AvailabilityCheck:
    candidate: int | None = None
    status: AvailabilityStatus = AvailabilityStatus.IDLE
    message: str | None = None

    @property
    def is_available(self) -> bool:
        return self.status is AvailabilityStatus.AVAILABLE


class ReservationPhase(str, Enum):
    NONE = "none"
    HELD = "held"
    COMMITTED = "committed"
    EXPIRED = "expired"
    CLEARED = "cleared"


# Gate states -----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CheckingAuth:
    name: ClassVar[str] = "checking_auth"


@dataclass(frozen=True, slots=True)
class Unauthenticated:
    name: ClassVar[str] = "unauthenticated"


@dataclass(frozen=True, slots=True)
class ProvisioningEntitlements:
    user_id: str
    name: ClassVar[str] = "provisioning_entitlements"


@dataclass(frozen=True, slots=True)
class Gated:
    user_id: str
    reservation: Reservation | None = None
    name: ClassVar[str] = "gated"


@dataclass(frozen=True, slots=True)
class Entitled:
    user_id: str
    name: ClassVar[str] = "entitled"


GateState = Union[CheckingAuth, Unauthenticated, ProvisioningEntitlements, Gated, Entitled]


@dataclass(frozen=True, slots=True)
class MembershipProgress:
    elapsed: str
    days_subscribed: int
    level: int
    level_name: str
    next_level_threshold_days: int
    days_until_next_level: int
    progress: float
    is_max_level: bool = False


__all__ = [
    "AvailabilityCheck",
    "AvailabilityStatus",
    "Catalog",
    "CheckingAuth",
    "Entitled",
    "EntitlementSnapshot",
    "Gated",
    "GateState",
    "MembershipProgress",
    "NewProfile",
    "Offering",
    "Package",
    "PoolEntry",
    "Profile",
    "ProvisioningEntitlements",
    "PurchaseResult",
    "Reservation",
    "ReservationPhase",
    "Unauthenticated",
    "UserSession",
]
