"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from saarthi.config import get_settings

settings = get_settings()


def _daily_at(hh_mm: str) -> crontab:
    """crontab for a local "HH:MM" time."""
    hour, minute = hh_mm.split(":")
    return crontab(hour=int(hour), minute=int(minute))


# Create Celery app
celery_app = Celery(
    "saarthi",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "saarthi.tasks.reminders",
        "saarthi.tasks.follow_ups",
        "saarthi.tasks.check_ins",
        "saarthi.tasks.reports",
        "saarthi.tasks.cleanup",
    ],
)

beat_schedule = {
    "send-due-medication-reminders": {
        "task": "saarthi.tasks.reminders.send_due_medication_reminders",
        "schedule": 60.0,  # Every minute
    },
    "send-symptom-follow-ups": {
        "task": "saarthi.tasks.follow_ups.send_symptom_follow_ups",
        "schedule": crontab(hour=settings.symptom_follow_up_hour, minute=0),
    },
    "send-daily-reports": {
        "task": "saarthi.tasks.reports.send_daily_reports",
        "schedule": _daily_at(settings.daily_report_time),
    },
    "prune-old-records": {
        "task": "saarthi.tasks.cleanup.prune_old_records",
        "schedule": _daily_at("03:30"),
    },
}
for time_slot, hh_mm in settings.check_in_times.items():
    beat_schedule[f"send-{time_slot}-check-ins"] = {
        "task": "saarthi.tasks.check_ins.send_scheduled_check_ins",
        "schedule": _daily_at(hh_mm),
        "args": [time_slot],
    }

# Configuration
celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # Timezone - beat crontabs are local times
    timezone=settings.timezone,
    enable_utc=True,

    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,

    # Result settings
    result_expires=3600,  # 1 hour

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,

    # Beat schedule for periodic tasks
    beat_schedule=beat_schedule,
)
