"""
Management command to delete abandoned bill drafts.
"""

from datetime import timedelta

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from apps.billing.models import BillDraft


class Command(BaseCommand):
    help = 'Delete bill drafts that have not been touched for a number of days'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=30,
            help='Delete drafts last updated more than this many days ago (default: 30)',
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Only report how many drafts would be deleted',
        )

    def handle(self, *args, **options):
        days = options['days']
        if days < 1:
            raise CommandError('--days must be at least 1')

        cutoff = timezone.now() - timedelta(days=days)
        stale = BillDraft.objects.filter(updated_at__lt=cutoff)
        count = stale.count()

        if options['dry_run']:
            self.stdout.write(f'{count} draft(s) older than {days} day(s) would be deleted')
            return

        stale.delete()
        self.stdout.write(
            self.style.SUCCESS(f'Deleted {count} draft(s) older than {days} day(s)')
        )
