"""Celery application for Dictask background syncs."""

import os

from celery import Celery
from celery.schedules import crontab

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("dictask")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks(["planner"])

# Keep the sprint calendar and team directory fresh without a manual sync.
app.conf.beat_schedule = {
    "sync-sprints-hourly": {
        "task": "planner.tasks.sync_sprints_task",
        "schedule": crontab(minute=5),
    },
    "sync-team-members-daily": {
        "task": "planner.tasks.sync_team_members_task",
        "schedule": crontab(hour=6, minute=0, day_of_week="mon-fri"),
    },
}
