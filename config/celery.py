import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.dev")

app = Celery("tractor_rentals")

app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


# ============================================================================
# CELERY BEAT SCHEDULE (Periodic Tasks)
# ============================================================================

app.conf.beat_schedule = {
    # Retrieval reminders for delivered tractors - every minute
    "flag-retrieval-reminders": {
        "task": "rentals.flag_retrieval_reminders",
        "schedule": 60.0,
        "options": {"expires": 50},
    },
}
