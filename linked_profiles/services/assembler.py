"""Shape lookup results into the JSON payloads returned to the voice agent."""

from __future__ import annotations

from typing import Any

from linked_profiles.models import ClientRecord, LinkedProfile

NOT_FOUND_MESSAGE = "No account found for this phone number"
NO_PROFILES_MESSAGE = "No linked profiles found"

_BOOKING_LABELS = {True: "child", False: "guest"}


def can_book_for(caller: ClientRecord, profiles: list[LinkedProfile]) -> list[str]:
    """Everyone the caller may book for, starting with the caller."""
    labels = [f"{caller.first_name} (yourself)"]
    labels.extend(f"{p.first_name} ({_BOOKING_LABELS[p.is_minor]})" for p in profiles)
    return labels


def summary_message(profiles: list[LinkedProfile]) -> str:
    if not profiles:
        return NO_PROFILES_MESSAGE
    names = ", ".join(p.first_name for p in profiles)
    return f"Found {len(profiles)} linked profile(s): {names}"


def found_response(
    caller: ClientRecord,
    profiles: list[LinkedProfile],
    *,
    fallback_phone: str | None = None,
) -> dict[str, Any]:
    """Payload for a caller that exists.

    ``fallback_phone`` is the listing phone matched during phone
    resolution, used when the detail record has none.
    """
    linked = [p.to_dict() for p in profiles]
    return {
        "success": True,
        "found": True,
        "caller": {
            "client_id": caller.client_id,
            "first_name": caller.first_name,
            "last_name": caller.last_name,
            "name": caller.full_name,
            "phone": caller.primary_phone or fallback_phone,
            "email": caller.email,
        },
        "linked_profiles": linked,
        "minors": [p for p in linked if p["is_minor"]],
        "guests": [p for p in linked if not p["is_minor"]],
        "can_book_for": can_book_for(caller, profiles),
        "total_linked": len(profiles),
        "message": summary_message(profiles),
    }


def not_found_response() -> dict[str, Any]:
    return {
        "success": True,
        "found": False,
        "caller": None,
        "linked_profiles": [],
        "can_book_for": [],
        "total_linked": 0,
        "message": NOT_FOUND_MESSAGE,
    }


def error_response(message: str) -> dict[str, Any]:
    return {"success": False, "error": message}
