"""
Sends the scheduled briefings that are due this hour.

Run it hourly from an external scheduler (cron, Kubernetes CronJob...):

    python manage.py run_briefings
    python manage.py run_briefings --kind meal --hour 12
"""
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from notifications.briefings import BriefingService, default_schedule
from notifications.models import NotificationKind

BRIEFING_KINDS = [kind.value for kind in NotificationKind if kind != NotificationKind.PROXIMITY]


class Command(BaseCommand):
    help = "Send morning/evening/last-day/segment-transition/meal briefings to travelers at the target local hour"

    def add_arguments(self, parser):
        parser.add_argument('--kind', choices=BRIEFING_KINDS, help="Only send this kind of briefing")
        parser.add_argument('--hour', type=int, help="Target local hour (0-23)")

    def handle(self, *args, **options):
        kind = options.get('kind')
        hour = options.get('hour')
        if hour is not None and not 0 <= hour <= 23:
            raise CommandError("--hour must be between 0 and 23")

        if kind:
            if hour is None:
                hour = self.default_hour(kind)
            schedule = [(hour, NotificationKind(kind))]
        else:
            schedule = [(h, k) for h, k in default_schedule() if hour is None or h == hour]

        service = BriefingService()
        totals = {'sent': 0, 'suppressed': 0, 'failed': 0}
        for target_hour, briefing_kind in schedule:
            result = service.run_scheduled_briefings(target_hour, briefing_kind)
            totals['sent'] += result.sent
            totals['suppressed'] += result.suppressed
            totals['failed'] += result.failed
            self.stdout.write(
                f"{result.kind}@{target_hour:02d}: {result.sent} sent, "
                f"{result.suppressed} suppressed, {result.failed} failed"
            )

        style = self.style.WARNING if totals['failed'] else self.style.SUCCESS
        self.stdout.write(style(
            f"Done: {totals['sent']} sent, {totals['suppressed']} suppressed, {totals['failed']} failed"
        ))

    @staticmethod
    def default_hour(kind: str) -> int:
        for hour, scheduled_kind in default_schedule():
            if scheduled_kind.value == kind:
                return hour
        if kind == NotificationKind.LAST_DAY.value:
            return settings.TRAVEL_ENGINE['MORNING_BRIEFING_HOUR']
        if kind == NotificationKind.MEAL.value:
            return settings.TRAVEL_ENGINE['MEAL_SUGGESTION_HOUR']
        raise CommandError(f"No default hour for {kind}; pass --hour")
