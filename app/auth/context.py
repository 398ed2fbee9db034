"""Signed-in user context: profile, factory roles and factory settings.

Records fetched from Supabase are shape-checked before they are trusted.
Each ``parse_*`` helper returns ``(value, error)``; callers log the error and
carry on without the record rather than failing the request.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Iterable, Mapping

from app.date_utils import DEFAULT_FACTORY_TIMEZONE

APP_ROLES = ("worker", "admin", "owner", "storage", "cutting", "superadmin")
ADMIN_ROLES = frozenset({"admin", "owner"})

DEFAULT_CUTOFF_TIME = "16:00:00"


@dataclass(frozen=True)
class Profile:
    id: str
    full_name: str
    email: str
    factory_id: str | None = None
    phone: str | None = None
    avatar_url: str | None = None
    is_active: bool = True
    department: str | None = None
    invitation_status: str | None = None


@dataclass(frozen=True)
class UserRole:
    role: str
    factory_id: str | None = None


@dataclass(frozen=True)
class Factory:
    id: str
    name: str
    slug: str
    subscription_tier: str
    low_stock_threshold: float
    subscription_status: str | None = None
    trial_end_date: str | None = None
    cutoff_time: str = DEFAULT_CUTOFF_TIME
    morning_target_cutoff: str | None = None
    evening_actual_cutoff: str | None = None
    timezone: str = DEFAULT_FACTORY_TIMEZONE
    logo_url: str | None = None
    max_lines: int | None = None


def _require_str(record: Mapping[str, Any], key: str, errors: list[str]) -> str:
    value = record.get(key)
    if not isinstance(value, str):
        errors.append(f"{key} must be a string")
        return ""
    return value


def _optional_str(record: Mapping[str, Any], key: str, errors: list[str]) -> str | None:
    value = record.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        errors.append(f"{key} must be a string or null")
        return None
    return value


def _optional_number(record: Mapping[str, Any], key: str, errors: list[str]):
    value = record.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        errors.append(f"{key} must be a number or null")
        return None
    return value


def parse_profile(record: Any) -> tuple[Profile | None, str | None]:
    """Validate a ``profiles`` row."""

    if not isinstance(record, Mapping):
        return None, "Profile record must be an object"

    errors: list[str] = []
    identifier = _require_str(record, "id", errors)
    full_name = _require_str(record, "full_name", errors)
    email = _require_str(record, "email", errors)
    factory_id = _optional_str(record, "factory_id", errors)
    phone = _optional_str(record, "phone", errors)
    avatar_url = _optional_str(record, "avatar_url", errors)
    department = _optional_str(record, "department", errors)
    invitation_status = _optional_str(record, "invitation_status", errors)

    is_active = record.get("is_active")
    if is_active is None:
        is_active = True
    elif not isinstance(is_active, bool):
        errors.append("is_active must be a boolean or null")

    if errors:
        return None, "Invalid profile: " + "; ".join(errors)

    return (
        Profile(
            id=identifier,
            full_name=full_name,
            email=email,
            factory_id=factory_id,
            phone=phone,
            avatar_url=avatar_url,
            is_active=is_active,
            department=department,
            invitation_status=invitation_status,
        ),
        None,
    )


def parse_roles(
    records: Any, factory_id: str | None
) -> tuple[list[UserRole] | None, str | None]:
    """Validate ``user_roles`` rows and keep the ones for ``factory_id``.

    A user without a factory only keeps roles that are not factory scoped.
    """

    if not isinstance(records, list):
        return None, "Roles payload must be a list"

    roles: list[UserRole] = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            return None, f"Invalid role at index {index}: must be an object"
        role = record.get("role")
        if role not in APP_ROLES:
            return None, f"Invalid role at index {index}: unknown role {role!r}"
        errors: list[str] = []
        role_factory = _optional_str(record, "factory_id", errors)
        if errors:
            return None, f"Invalid role at index {index}: " + "; ".join(errors)
        roles.append(UserRole(role=role, factory_id=role_factory))

    return [role for role in roles if role.factory_id == factory_id], None


def parse_factory(record: Any) -> tuple[Factory | None, str | None]:
    """Validate a ``factory_accounts`` row, applying timezone and cutoff defaults."""

    if not isinstance(record, Mapping):
        return None, "Factory record must be an object"

    errors: list[str] = []
    values = {
        "id": _require_str(record, "id", errors),
        "name": _require_str(record, "name", errors),
        "slug": _require_str(record, "slug", errors),
        "subscription_tier": _require_str(record, "subscription_tier", errors),
        "subscription_status": _optional_str(record, "subscription_status", errors),
        "trial_end_date": _optional_str(record, "trial_end_date", errors),
        "cutoff_time": _optional_str(record, "cutoff_time", errors) or DEFAULT_CUTOFF_TIME,
        "morning_target_cutoff": _optional_str(record, "morning_target_cutoff", errors),
        "evening_actual_cutoff": _optional_str(record, "evening_actual_cutoff", errors),
        "timezone": _optional_str(record, "timezone", errors) or DEFAULT_FACTORY_TIMEZONE,
        "logo_url": _optional_str(record, "logo_url", errors),
        "max_lines": _optional_number(record, "max_lines", errors),
    }
    threshold = _optional_number(record, "low_stock_threshold", errors)
    if threshold is None and not errors:
        errors.append("low_stock_threshold is required")

    if errors:
        return None, "Invalid factory: " + "; ".join(errors)

    return Factory(low_stock_threshold=threshold, **values), None


@dataclass
class AuthContext:
    """Everything request handlers need to know about the signed-in user.

    Built once at sign-in, stored in the Flask session and dropped at
    sign-out.
    """

    user_id: str
    email: str | None = None
    profile: Profile | None = None
    roles: list[UserRole] = field(default_factory=list)
    factory: Factory | None = None

    @property
    def factory_id(self) -> str | None:
        return self.profile.factory_id if self.profile else None

    @property
    def timezone(self) -> str:
        return self.factory.timezone if self.factory else DEFAULT_FACTORY_TIMEZONE

    @property
    def display_name(self) -> str:
        if self.profile and self.profile.full_name:
            return self.profile.full_name
        return self.email or self.user_id

    def has_role(self, role: str) -> bool:
        return any(entry.role == role for entry in self.roles)

    def has_any_role(self, roles: Iterable[str]) -> bool:
        wanted = set(roles)
        return any(entry.role in wanted for entry in self.roles)

    def is_admin_or_higher(self) -> bool:
        return self.has_any_role(ADMIN_ROLES)

    def is_storage_user(self) -> bool:
        return self.has_role("storage")

    def is_cutting_user(self) -> bool:
        return self.has_role("cutting")

    def to_session(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "email": self.email,
            "profile": asdict(self.profile) if self.profile else None,
            "roles": [asdict(role) for role in self.roles],
            "factory": asdict(self.factory) if self.factory else None,
        }

    @classmethod
    def from_session(cls, data: Mapping[str, Any] | None) -> "AuthContext | None":
        if not data or not data.get("user_id"):
            return None
        profile = Profile(**data["profile"]) if data.get("profile") else None
        factory = Factory(**data["factory"]) if data.get("factory") else None
        roles = [UserRole(**role) for role in data.get("roles") or []]
        return cls(
            user_id=data["user_id"],
            email=data.get("email"),
            profile=profile,
            roles=roles,
            factory=factory,
        )
