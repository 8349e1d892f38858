# ledger/management/commands/verify_ledgers.py

"""
Audit every student's ledger.

USAGE EXAMPLES:
===============

# 1. Audit all ledgers with the configured tolerance
python manage.py verify_ledgers

# 2. Allow a difference of up to 1 minor unit
python manage.py verify_ledgers --tolerance 1
"""

from django.core.management.base import BaseCommand, CommandError
import logging

from core.config import resolve_profile
from ledger.services import LedgerService

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Recompute running balances of every ledger and report inconsistencies'

    def add_arguments(self, parser):
        parser.add_argument(
            '--tolerance', type=int, default=None,
            help='Allowed difference in minor units (defaults to the hostel profile)'
        )

    def handle(self, *args, **options):
        profile = resolve_profile()
        if options['tolerance'] is not None:
            profile = profile.with_overrides(balance_tolerance=options['tolerance'])

        self.stdout.write(self.style.MIGRATE_HEADING('Verifying student ledgers...'))
        failures = LedgerService.find_inconsistent_ledgers(profile=profile)

        if not failures:
            self.stdout.write(self.style.SUCCESS('All ledgers are consistent.'))
            return

        for student, error in failures:
            self.stderr.write(self.style.ERROR(f"{student.name} ({student.pk}): {error}"))

        raise CommandError(f"{len(failures)} inconsistent ledger(s) found")
