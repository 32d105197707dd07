"""
Add celery-beat schedules for webhook recovery.

retry_failed_webhooks re-queues FAILED events every 5 minutes;
cleanup_stuck_webhooks resets events stuck in PROCESSING every 15 minutes.
"""

from django.db import migrations

SCHEDULES = [
    {
        "name": "Retry Failed Escrow Webhooks",
        "task": "escrow.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues failed Paystack webhook events under the retry limit.",
    },
    {
        "name": "Reset Stuck Escrow Webhooks",
        "task": "escrow.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "description": "Marks webhook events stuck in processing as failed so they are retried.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in SCHEDULES:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[entry["name"] for entry in SCHEDULES]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("escrow", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
