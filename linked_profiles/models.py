"""Domain types for client lookups and linked-profile discovery."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(value: str | None) -> str:
    """Strip everything but digits and keep the last 10 (drops country codes).

    >>> normalize_phone("+1 (555) 123-4567")
    '5551234567'
    """
    if not value:
        return ""
    return _NON_DIGITS.sub("", str(value))[-10:]


def _first_phone(payload: dict[str, Any]) -> str | None:
    phone = payload.get("primaryPhoneNumber")
    if phone:
        return str(phone)
    numbers = payload.get("phoneNumbers")
    if not isinstance(numbers, list) or not numbers:
        return None
    if isinstance(numbers[0], dict) and numbers[0].get("number"):
        return str(numbers[0]["number"])
    return None


@dataclass(frozen=True)
class ClientRecord:
    """Snapshot of a Meevo client as returned by the directory, detail
    or change-feed endpoints.  Listing rows usually lack ``guardian_id``.
    """

    client_id: str
    first_name: str = ""
    last_name: str = ""
    primary_phone: str | None = None
    guardian_id: str | None = None
    is_minor: bool = False
    email: str | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> ClientRecord | None:
        """Build a record from a Meevo JSON object, or ``None`` without an id."""
        client_id = payload.get("clientId") or payload.get("id")
        if not client_id:
            return None
        guardian_id = payload.get("guardianId")
        return cls(
            client_id=str(client_id),
            first_name=payload.get("firstName") or "",
            last_name=payload.get("lastName") or "",
            primary_phone=_first_phone(payload),
            guardian_id=str(guardian_id) if guardian_id else None,
            is_minor=bool(payload.get("isMinor")),
            email=payload.get("emailAddress") or None,
        )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def normalized_phone(self) -> str:
        return normalize_phone(self.primary_phone)


class ProfileType(StrEnum):
    MINOR = "minor"
    GUEST = "guest"


@dataclass(frozen=True)
class LinkedProfile:
    """A client record confirmed to name the caller as guardian."""

    client_id: str
    first_name: str
    last_name: str
    is_minor: bool

    @classmethod
    def from_record(cls, record: ClientRecord) -> LinkedProfile:
        return cls(
            client_id=record.client_id,
            first_name=record.first_name,
            last_name=record.last_name,
            is_minor=record.is_minor,
        )

    @property
    def type(self) -> ProfileType:
        return ProfileType.MINOR if self.is_minor else ProfileType.GUEST

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "name": self.name,
            "is_minor": self.is_minor,
            "type": self.type.value,
        }


@dataclass
class DiscoverySession:
    """Per-call discovery state.  Never shared between requests."""

    guardian_id: str
    guardian_last_name: str | None = None
    seen_ids: set[str] = field(default_factory=set)
    results: list[LinkedProfile] = field(default_factory=list)
    candidates_checked: int = 0
    # Candidates whose detail fetch failed (best-effort completeness)
    skipped: int = 0

    def confirm(self, record: ClientRecord) -> bool:
        """Mark *record* as seen and keep it if it names the guardian.

        Returns ``True`` only when a new linked profile was added.
        """
        if record.client_id in self.seen_ids:
            return False
        self.seen_ids.add(record.client_id)
        self.candidates_checked += 1
        if record.client_id == self.guardian_id:
            return False
        if record.guardian_id != self.guardian_id:
            return False
        self.results.append(LinkedProfile.from_record(record))
        return True
