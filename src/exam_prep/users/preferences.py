"""Preference edits from the onboarding and settings screens."""

from dataclasses import dataclass

import structlog

from exam_prep.models.user import Preferences, ProgramPreference, utc_now
from exam_prep.storage.documents import USERS, DocumentStore
from exam_prep.storage.writes import try_write
from exam_prep.users.provisioning import load_user

logger = structlog.get_logger()


@dataclass
class PreferenceUpdate:
    preferences: Preferences
    warning: str | None = None

    @property
    def persisted(self) -> bool:
        return self.warning is None


def _save(store: DocumentStore, uid: str, preferences: Preferences) -> PreferenceUpdate:
    warning = try_write(
        store,
        USERS,
        uid,
        {"preferences": preferences.model_dump(), "updated_at": utc_now()},
        merge=True,
    )
    return PreferenceUpdate(preferences=preferences, warning=warning)


def set_daily_goal(store: DocumentStore, uid: str, minutes: int) -> PreferenceUpdate:
    if minutes < 0:
        raise ValueError("daily goal must be >= 0 minutes")
    preferences = load_user(store, uid).preferences
    preferences.daily_goal_minutes = minutes
    logger.info("daily_goal_set", uid=uid, minutes=minutes)
    return _save(store, uid, preferences)


def set_notifications(store: DocumentStore, uid: str, enabled: bool) -> PreferenceUpdate:
    preferences = load_user(store, uid).preferences
    preferences.notifications_enabled = enabled
    return _save(store, uid, preferences)


def _dedupe(programs: list[ProgramPreference]) -> list[ProgramPreference]:
    seen: set[tuple[str, str, str]] = set()
    unique = []
    for program in programs:
        if program.key not in seen:
            seen.add(program.key)
            unique.append(program)
    return unique


def set_interested_programs(
    store: DocumentStore, uid: str, programs: list[ProgramPreference]
) -> PreferenceUpdate:
    """Replace the ordered program list (duplicates keep their first position)."""
    preferences = load_user(store, uid).preferences
    preferences.interested_programs = _dedupe(programs)
    return _save(store, uid, preferences)


def add_interested_program(
    store: DocumentStore, uid: str, program: ProgramPreference
) -> PreferenceUpdate:
    preferences = load_user(store, uid).preferences
    preferences.interested_programs = _dedupe([*preferences.interested_programs, program])
    return _save(store, uid, preferences)


def remove_interested_program(
    store: DocumentStore, uid: str, program_id: str, level: str | None = None, role_id: str | None = None
) -> PreferenceUpdate:
    """Remove matching entries; ``level``/``role_id`` of None match anything."""
    preferences = load_user(store, uid).preferences
    preferences.interested_programs = [
        p
        for p in preferences.interested_programs
        if not (
            p.program_id == program_id
            and (level is None or p.level == level)
            and (role_id is None or p.role_id == role_id)
        )
    ]
    return _save(store, uid, preferences)
