import logging

from sqlalchemy.orm import Session

from app.config import REMINDER_DEFAULT_DELAYS, REMINDER_MAX_DELAYS
from app.errors import ValidationError
from app.models.reminder_settings import ReminderSettings


logger = logging.getLogger(__name__)

SETTINGS_ID = "default"
SLOTS = (1, 2, 3)

_UPDATABLE_FIELDS = (
    "enabled",
    "reminder1_delay",
    "reminder2_delay",
    "reminder3_delay",
    "reminder1_enabled",
    "reminder2_enabled",
    "reminder3_enabled",
)


def _default_settings() -> ReminderSettings:
    d1, d2, d3 = REMINDER_DEFAULT_DELAYS
    return ReminderSettings(
        id=SETTINGS_ID,
        enabled=True,
        reminder1_delay=d1,
        reminder2_delay=d2,
        reminder3_delay=d3,
        reminder1_enabled=True,
        reminder2_enabled=True,
        reminder3_enabled=True,
    )


def get_reminder_settings(db: Session) -> ReminderSettings:
    settings = db.query(ReminderSettings).filter(ReminderSettings.id == SETTINGS_ID).first()
    if settings:
        return settings

    settings = _default_settings()
    db.add(settings)
    db.commit()
    db.refresh(settings)
    return settings


def validate_delay(slot_number: int, value) -> int:
    max_delay = REMINDER_MAX_DELAYS[slot_number - 1]
    if isinstance(value, bool):
        raise ValidationError(f"reminder{slot_number}_delay must be an integer")
    try:
        hours = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"reminder{slot_number}_delay must be an integer")
    if hours != value or hours < 1 or hours > max_delay:
        raise ValidationError(f"reminder{slot_number}_delay must be between 1 and {max_delay} hours")
    return hours


def update_reminder_settings(db: Session, **changes) -> ReminderSettings:
    """
    Partial update of the singleton. Every value is validated before the
    row is touched, so a rejected update leaves the stored settings as they
    were. Already scheduled reminders keep their initial due time.
    """
    unknown = set(changes) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown reminder settings field(s): {', '.join(sorted(unknown))}")

    clean = {}
    for key, value in changes.items():
        if value is None:
            continue
        if key.endswith("_delay"):
            clean[key] = validate_delay(int(key[len("reminder")]), value)
        else:
            if not isinstance(value, bool):
                raise ValidationError(f"{key} must be a boolean")
            clean[key] = value

    settings = get_reminder_settings(db)
    for key, value in clean.items():
        setattr(settings, key, value)

    enabled_delays = [settings.slot(s)[1] for s in SLOTS if settings.slot(s)[0]]
    if any(b <= a for a, b in zip(enabled_delays, enabled_delays[1:])):
        logger.warning(
            "reminder delays are not strictly increasing",
            extra={"delays": enabled_delays},
        )

    db.commit()
    db.refresh(settings)

    logger.info("reminder settings updated", extra={"changes": clean})
    return settings
