"""Medication service - schedules, reminders and adherence history."""

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from saarthi.models import Medication, MedicationReminder, ReminderStatus
from saarthi.utils.dates import (
    calculate_end_date,
    format_date,
    generate_reminder_times,
    local_tz,
    parse_duration_days,
    standardize_time_format,
)
from saarthi.utils.text import normalize_identity

logger = logging.getLogger(__name__)


async def get_user_medications(db: AsyncSession, phone_number: str) -> list[Medication]:
    """All medications for a user, in the order they were added."""
    result = await db.execute(
        select(Medication)
        .where(Medication.user_phone == normalize_identity(phone_number))
        .order_by(Medication.created_at)
    )
    return list(result.scalars().all())


async def get_medication(db: AsyncSession, medication_id: UUID | str) -> Medication | None:
    if isinstance(medication_id, str):
        medication_id = UUID(medication_id)
    result = await db.execute(select(Medication).where(Medication.id == medication_id))
    return result.scalar_one_or_none()


async def get_medication_by_name(
    db: AsyncSession, phone_number: str, name: str
) -> Medication | None:
    for medication in await get_user_medications(db, phone_number):
        if medication.name.lower() == name.lower():
            return medication
    return None


async def add_medication(
    db: AsyncSession,
    phone_number: str,
    name: str,
    time: str,
    dosage: str | None = None,
    frequency: str = "daily",
    duration: str | int | None = None,
    added_by: str | None = None,
) -> Medication:
    """Create a medication schedule.

    Args:
        phone_number: Whose medication this is
        name: Medicine name
        time: First reminder time as typed ("8:00 AM")
        dosage: Free-text dosage, None if not applicable
        frequency: "once daily", "twice daily", "5 times a day", ...
        duration: Days to take it, or None/"ongoing"
        added_by: Caregiver phone when added on someone's behalf
    """
    now = datetime.now(timezone.utc)
    standardized_time = standardize_time_format(time)
    duration_days = parse_duration_days(str(duration)) if duration is not None else None

    medication = Medication(
        user_phone=normalize_identity(phone_number),
        name=name.strip(),
        dosage=dosage,
        time=standardized_time,
        reminder_times=generate_reminder_times(standardized_time, frequency),
        frequency=frequency,
        duration_days=duration_days,
        start_date=now,
        end_date=calculate_end_date(duration_days, now),
        added_by=normalize_identity(added_by) if added_by else None,
        taken_times=[],
        missed_times=[],
    )
    db.add(medication)
    await db.flush()

    logger.info(
        f"💊 Added {medication.name} for {medication.user_phone} "
        f"at {medication.reminder_times} ({frequency})"
    )
    return medication


async def update_medication(
    db: AsyncSession,
    medication: Medication,
    name: str,
    dosage: str | None,
    time: str,
    frequency: str,
    duration_days: int | None,
) -> Medication:
    """Replace a medication's schedule; reminder times and end date are recomputed."""
    old_name = medication.name
    standardized_time = standardize_time_format(time)

    medication.name = name
    medication.dosage = dosage
    medication.time = standardized_time
    medication.frequency = frequency
    medication.reminder_times = generate_reminder_times(standardized_time, frequency)
    medication.duration_days = duration_days
    medication.end_date = calculate_end_date(duration_days, medication.start_date)
    await db.flush()

    logger.info(f"💊 Updated {old_name} -> {name} for {medication.user_phone}")
    return medication


async def delete_medication(db: AsyncSession, medication: Medication) -> None:
    """Delete a medication and every reminder sent for it."""
    await db.execute(
        delete(MedicationReminder).where(
            MedicationReminder.user_phone == medication.user_phone,
            MedicationReminder.medicine == medication.name,
        )
    )
    await db.delete(medication)
    await db.flush()
    logger.info(f"🗑️ Deleted {medication.name} for {medication.user_phone}")


async def record_medication_response(
    db: AsyncSession,
    phone_number: str,
    medicine: str,
    taken: bool,
    now: datetime | None = None,
) -> Medication | None:
    """Append a taken/missed timestamp to the medication's history."""
    medication = await get_medication_by_name(db, phone_number, medicine)
    if medication is None:
        logger.warning(f"⚠️ No medication named {medicine} for {phone_number}")
        return None

    stamp = (now or datetime.now(timezone.utc)).isoformat()
    # Reassign so the JSONB column is marked dirty
    if taken:
        medication.taken_times = [*(medication.taken_times or []), stamp]
    else:
        medication.missed_times = [*(medication.missed_times or []), stamp]
    await db.flush()
    return medication


# =============================================================================
# Reminders
# =============================================================================


async def create_reminder(
    db: AsyncSession,
    phone_number: str,
    medicine: str,
    scheduled_time: str | None = None,
) -> MedicationReminder:
    reminder = MedicationReminder(
        user_phone=normalize_identity(phone_number),
        medicine=medicine,
        scheduled_time=scheduled_time,
        responded=False,
        status=ReminderStatus.SENT.value,
        message_sent=False,
    )
    db.add(reminder)
    await db.flush()
    return reminder


async def get_reminder(db: AsyncSession, reminder_id: UUID | str) -> MedicationReminder | None:
    if isinstance(reminder_id, str):
        reminder_id = UUID(reminder_id)
    result = await db.execute(
        select(MedicationReminder).where(MedicationReminder.id == reminder_id)
    )
    return result.scalar_one_or_none()


async def set_reminder_status(
    db: AsyncSession,
    reminder: MedicationReminder,
    status: ReminderStatus,
    conflict_reason: str | None = None,
) -> MedicationReminder:
    """Close a reminder with the user's answer (or the reason it was skipped)."""
    reminder.responded = True
    reminder.status = status.value
    if conflict_reason:
        reminder.conflict_reason = conflict_reason
    await db.flush()
    logger.info(f"🔔 Reminder {reminder.id} ({reminder.medicine}) -> {status.value}")
    return reminder


def is_medication_active(medication: Medication, now: datetime) -> bool:
    return medication.end_date is None or medication.end_date >= now


async def get_due_medications(
    db: AsyncSession, local_time: str, now: datetime | None = None
) -> list[Medication]:
    """Active medications with a reminder time equal to local_time ("08:00 am")."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(select(Medication))
    return [
        medication
        for medication in result.scalars().all()
        if local_time in (medication.reminder_times or [medication.time])
        and is_medication_active(medication, now)
    ]


# =============================================================================
# History and summaries
# =============================================================================


def _parse_stamps(stamps: list[str], since: datetime | None) -> list[datetime]:
    parsed = []
    for stamp in stamps or []:
        try:
            value = datetime.fromisoformat(stamp)
        except (TypeError, ValueError):
            continue
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        if since is None or value >= since:
            parsed.append(value)
    return parsed


def _format_stamps(stamps: list[datetime]) -> str:
    tz = local_tz()
    return ", ".join(
        stamp.astimezone(tz).strftime("%d %b %Y %I:%M %p") for stamp in stamps
    )


def history_header(phone_number: str) -> str:
    return f"📜 *Medication History for {normalize_identity(phone_number)}*:\n\n"


async def get_medication_history(
    db: AsyncSession,
    phone_number: str,
    last_n_days: int | None = None,
    now: datetime | None = None,
) -> str:
    """Adherence history text; only medications with responses in range are listed."""
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=last_n_days) if last_n_days else None

    history = history_header(phone_number)
    for medication in await get_user_medications(db, phone_number):
        taken = _parse_stamps(medication.taken_times, since)
        missed = _parse_stamps(medication.missed_times, since)
        if not taken and not missed:
            continue

        reminder_times = ", ".join(medication.reminder_times or [medication.time])
        duration = f"{medication.duration_days} days" if medication.duration_days else "Ongoing"
        end_date = format_date(medication.end_date) if medication.end_date else "Ongoing"

        history += (
            f"💊 *{medication.name}*:\n"
            f"   - Dosage: {medication.dosage or 'Not specified'}\n"
            f"   - Reminder Time(s): {reminder_times}\n"
            f"   - Frequency: {medication.frequency}\n"
            f"   - Duration: {duration}\n"
            f"   - Start Date: {format_date(medication.start_date)}\n"
            f"   - End Date: {end_date}\n"
            f"   - Taken: {len(taken)} times\n"
        )
        if taken:
            history += f"       *Dates:* {_format_stamps(taken)}\n"
        history += f"   - Missed: {len(missed)} times\n"
        if missed:
            history += f"       *Dates:* {_format_stamps(missed)}\n"
        history += "\n"

    return history


async def get_medication_summary(
    db: AsyncSession, phone_number: str, now: datetime | None = None
) -> str:
    """Today's taken/missed counts per medication, for caregiver reports."""
    now = now or datetime.now(timezone.utc)
    today = now.astimezone(local_tz()).date()

    medications = await get_user_medications(db, phone_number)
    summary = f"💊 *Medication Summary for {normalize_identity(phone_number)} (Today)*:\n\n"
    active = [m for m in medications if is_medication_active(m, now)]
    if not active:
        return summary + "No medications scheduled for today."

    tz = local_tz()
    for medication in active:
        taken = [
            t for t in _parse_stamps(medication.taken_times, None)
            if t.astimezone(tz).date() == today
        ]
        missed = [
            t for t in _parse_stamps(medication.missed_times, None)
            if t.astimezone(tz).date() == today
        ]
        scheduled = len(medication.reminder_times or [medication.time])
        summary += (
            f"*{medication.name}* ({medication.dosage or 'No dosage specified'})\n"
            f"   - Scheduled: {scheduled} time(s)\n"
            f"   - Taken: {len(taken)}\n"
            f"   - Missed: {len(missed)}\n\n"
        )
    return summary.rstrip() + "\n"
