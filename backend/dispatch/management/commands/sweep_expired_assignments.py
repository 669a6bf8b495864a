from django.core.management.base import BaseCommand

from services.dispatch_management import get_coordinator


class Command(BaseCommand):
    help = "Expire pending assignments past their claim window and re-dispatch or escalate their orders."

    def handle(self, *args, **options):
        result = get_coordinator().sweep_expired()

        self.stdout.write(
            self.style.SUCCESS(
                f"Expired {result.expired} assignment(s); re-dispatched {result.redispatched}; "
                f"exhausted {result.exhausted}; failed {result.failed}."
            )
        )
