# Recalculate Loyalty Management Command
from django.core.management.base import BaseCommand
from django.db import transaction
from django.db.models import Sum

from core.loyalty import calculate_badge, rating_reward
from core.models import Rating, User


class Command(BaseCommand):
    help = 'Recalculates loyalty points and badges from ratings to ensure data consistency.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Run the command without saving changes to the database.',
        )
        parser.add_argument(
            '--reprice-ratings',
            action='store_true',
            help='First reset each rating\'s awarded points to the current reward table.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=1000,
            help='Batch size for bulk processing.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']

        with transaction.atomic():
            if options['reprice_ratings']:
                self.reprice_ratings(dry_run, batch_size)

            self.recalculate_users(dry_run, batch_size, reprice=options['reprice_ratings'])

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Recalculation completed successfully.'))

    def reprice_ratings(self, dry_run, batch_size):
        self.stdout.write('Repricing ratings...')
        updates = []
        count = 0

        for rating in Rating.objects.order_by('pk').iterator(chunk_size=batch_size):
            reward = rating_reward(rating.score)
            if rating.points_awarded != reward:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] Rating {rating.id} ({rating.score} stars): '
                        f'Points {rating.points_awarded} -> {reward}'
                    )
                rating.points_awarded = reward
                updates.append(rating)

            if len(updates) >= batch_size:
                if not dry_run:
                    # bulk_update skips the Rating signals; user totals are rebuilt below.
                    Rating.objects.bulk_update(updates, ['points_awarded'])
                updates = []

            count += 1

        if updates and not dry_run:
            Rating.objects.bulk_update(updates, ['points_awarded'])

        self.stdout.write(f'Processed {count} ratings total.')

    def recalculate_users(self, dry_run, batch_size, reprice=False):
        self.stdout.write('Recalculating loyalty points...')
        users = User.objects.select_for_update().order_by('pk').iterator(chunk_size=batch_size)
        updates = []
        count = 0

        for user in users:
            received = Rating.objects.filter(reviewee=user)
            if reprice:
                # Ratings are not yet repriced in a dry run.
                total = sum(rating_reward(score) for score in received.values_list('score', flat=True))
            else:
                total = received.aggregate(total=Sum('points_awarded'))['total'] or 0
            badge = calculate_badge(total)

            if user.loyalty_points != total or user.badge != badge:
                if dry_run:
                    self.stdout.write(
                        f'  [DRY-RUN] User {user.id} ({user.email}): '
                        f'Points {user.loyalty_points} -> {total}, Badge {user.badge} -> {badge}'
                    )
                user.loyalty_points = total
                user.badge = badge
                updates.append(user)

            if len(updates) >= batch_size:
                if not dry_run:
                    User.objects.bulk_update(updates, ['loyalty_points', 'badge'])
                updates = []

            count += 1
            if count % 100 == 0:
                self.stdout.write(f'Processed {count} users...')

        if updates and not dry_run:
            User.objects.bulk_update(updates, ['loyalty_points', 'badge'])

        self.stdout.write(f'Processed {count} users total.')
