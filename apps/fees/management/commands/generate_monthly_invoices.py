# fees/management/commands/generate_monthly_invoices.py

"""
Generate monthly invoices for all ACTIVE students.

USAGE EXAMPLES:
===============

# 1. Bill everybody for January 2024
python manage.py generate_monthly_invoices --year 2024 --month 1

# 2. Bill specific students only
python manage.py generate_monthly_invoices --year 2024 --month 1 --student <uuid> --student <uuid>

# 3. Spread the run over 4 threads
python manage.py generate_monthly_invoices --year 2024 --month 1 --workers 4
"""

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone
import logging

from fees.invoice_generators import generate_monthly_invoices

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Generate monthly invoices (one ledger debit per student and month)'

    def add_arguments(self, parser):
        today = timezone.localdate()
        parser.add_argument('--year', type=int, default=today.year, help='Billing year')
        parser.add_argument('--month', type=int, default=today.month, help='Billing month (1-12)')
        parser.add_argument(
            '--student', action='append', dest='students', default=None,
            help='Student ID to bill; repeat to bill several'
        )
        parser.add_argument('--workers', type=int, default=1, help='Number of worker threads')

    def handle(self, *args, **options):
        year, month = options['year'], options['month']

        self.stdout.write(self.style.MIGRATE_HEADING(f"Generating invoices for {year}-{month:02d}..."))
        try:
            batch = generate_monthly_invoices(
                year,
                month,
                student_ids=options['students'],
                posted_by='system:generate_monthly_invoices',
                workers=options['workers'],
            )
        except ValueError as e:
            raise CommandError(str(e))

        for result in batch.results:
            if result.status == batch.CREATED:
                self.stdout.write(f"  {result.reference_id}  {result.student_name}  {result.total}")
            elif result.status == batch.SKIPPED:
                self.stdout.write(self.style.WARNING(f"  skipped  {result.student_name}: {result.error}"))
            else:
                self.stderr.write(self.style.ERROR(f"  failed   {result.student_name}: {result.error}"))

        summary = f"{batch.created} created, {batch.skipped} skipped, {batch.failed} failed"
        if batch.failed:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))
