"""
Django management command to settle ACTIVE sessions nobody ended.

Usage:
    python manage.py settle_stale_sessions
"""
from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from readings.cleanup.stale_sessions import settle_stale_sessions


class Command(BaseCommand):
    help = "Settle ACTIVE reading sessions older than STALE_SESSION_HOURS"

    def handle(self, *args, **options):
        self.stdout.write(f"[{timezone.now()}] Starting stale session sweep...")
        result = settle_stale_sessions()
        self.stdout.write(
            self.style.SUCCESS(
                f"[{timezone.now()}] Sweep completed: "
                f'{result["sessions_checked"]} sessions checked, '
                f'{result["sessions_settled"]} settled, '
                f'{result["sessions_skipped"]} skipped, '
                f'{result["sessions_failed"]} failed'
            )
        )
        if result["sessions_failed"]:
            raise CommandError(f'{result["sessions_failed"]} sessions failed to settle; see logs')
