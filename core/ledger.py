"""
Rating & Loyalty Ledger.

Participants of a completed trade rate each other once per trade. Each
rating grants the reviewee loyalty points according to its score (see
``core.loyalty``); the point bookkeeping itself runs in the Rating signal
receivers, inside the same transaction as the rating write.
"""

import logging

from django.db import IntegrityError
from django.db.models import Avg, Count, Exists, Max, Min, OuterRef, Q
from rest_framework.exceptions import ValidationError

from .choices import TradeStatus
from .exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from .models import Rating, Trade
from .store import TradeStore

logger = logging.getLogger(__name__)

RATING_KINDS = ('received', 'given')


def _round_average(value):
    return round(value, 1) if value is not None else None


class RatingLedger:

    def __init__(self, store=None):
        self.store = store or TradeStore()

    def create_rating(self, rater_id, reviewee_id, trade_id, score, comment=''):
        """
        Rate the other participant of a completed trade.

        Checks, in order:
        1. Rater is not the reviewee (self_rating)
        2. Trade exists (trade_not_found)
        3. Trade is COMPLETED (trade_not_completed)
        4. Rater took part in the trade (not_trade_participant)
        5. Reviewee is the other party (reviewee_not_participant)
        6. No rating exists yet for (rater, reviewee, trade) (duplicate_rating)

        The rating and the reviewee's point increment are committed together.

        Returns:
            Rating: The created rating
        """
        self._check_score(score)

        if rater_id == reviewee_id:
            raise InvalidStateError('You cannot rate yourself.', code='self_rating')

        with self.store.atomic():
            trade = self.store.get_trade(trade_id)
            if trade is None:
                raise NotFoundError('Trade not found.', code='trade_not_found')

            if trade.status != TradeStatus.COMPLETED:
                raise InvalidStateError(
                    'You can only rate users from completed trades.',
                    code='trade_not_completed'
                )

            if not trade.is_participant(rater_id):
                raise ForbiddenError(
                    'You did not take part in this trade.',
                    code='not_trade_participant'
                )

            if trade.other_party_id(rater_id) != reviewee_id:
                raise ForbiddenError(
                    'You can only rate the other party of this trade.',
                    code='reviewee_not_participant'
                )

            if self.store.find_rating(rater_id, reviewee_id, trade.pk):
                raise ConflictError(
                    'You have already rated this user for this trade.',
                    code='duplicate_rating'
                )

            try:
                with self.store.atomic():
                    rating = self.store.create_rating(
                        rater_id, reviewee_id, trade, score, comment
                    )
            except IntegrityError:
                raise ConflictError(
                    'You have already rated this user for this trade.',
                    code='duplicate_rating'
                )

        logger.info(
            f"Rating created. Rating ID: {rating.pk}, Trade ID: {trade.pk}, "
            f"Reviewer ID: {rater_id}, Reviewee ID: {reviewee_id}, Score: {score}, "
            f"Points awarded: {rating.points_awarded}"
        )
        return rating

    def update_rating(self, user_id, rating_id, score=None, comment=None):
        """
        Change the score and/or comment of a rating.

        A score change adjusts the reviewee's points by the difference
        between the new and the previous reward, in the same transaction.

        Raises:
            NotFoundError: Rating does not exist
            ForbiddenError: User did not write the rating
        """
        if score is not None:
            self._check_score(score)

        with self.store.atomic():
            rating = self._get_own_rating(user_id, rating_id)

            update_fields = []
            if score is not None:
                rating.score = score
                update_fields.append('score')
            if comment is not None:
                rating.comment = comment
                update_fields.append('comment')

            if update_fields:
                self.store.save_rating(rating, update_fields)

        logger.info(
            f"Rating updated. Rating ID: {rating.pk}, Reviewer ID: {user_id}, "
            f"Fields: {update_fields}, Points awarded now: {rating.points_awarded}"
        )
        return rating

    def delete_rating(self, user_id, rating_id):
        """
        Delete a rating and take back the points it granted.

        Returns:
            int: Points removed from the reviewee
        """
        with self.store.atomic():
            rating = self._get_own_rating(user_id, rating_id)
            points = rating.points_awarded
            self.store.delete_rating(rating)

        logger.info(
            f"Rating deleted. Rating ID: {rating_id}, Reviewer ID: {user_id}, "
            f"Points reversed: {points}"
        )
        return points

    # ========================================================================
    # Queries
    # ========================================================================

    def get_pending_ratings(self, user_id):
        """
        Completed trades of the user that the user has not rated yet.

        Returns:
            list: dicts with 'trade' and 'user_to_rate', most recent first
        """
        already_rated = Rating.objects.filter(trade=OuterRef('pk'), reviewer_id=user_id)

        trades = (
            Trade.objects
            .filter(Q(owner_id=user_id) | Q(requester_id=user_id), status=TradeStatus.COMPLETED)
            .exclude(Exists(already_rated))
            .select_related('owner', 'requester', 'requested_item', 'offered_item')
            .order_by('-completed_at', '-pk')
        )

        return [
            {
                'trade': trade,
                'user_to_rate': trade.requester if trade.owner_id == user_id else trade.owner,
            }
            for trade in trades
        ]

    def get_user_ratings(self, user_id, kind='received'):
        """
        Ratings a user received or gave, with their average and count.

        Returns:
            dict: 'ratings' (QuerySet, newest first), 'average', 'total'
        """
        if kind not in RATING_KINDS:
            raise ValidationError({'type': [f'Must be one of: {", ".join(RATING_KINDS)}.']})

        self._get_user(user_id)

        if kind == 'received':
            ratings = Rating.objects.filter(reviewee_id=user_id).select_related('reviewer', 'trade')
        else:
            ratings = Rating.objects.filter(reviewer_id=user_id).select_related('reviewee', 'trade')

        summary = ratings.aggregate(average=Avg('score'), total=Count('id'))
        return {
            'ratings': ratings.order_by('-created_at', '-pk'),
            'average': _round_average(summary['average']),
            'total': summary['total'],
        }

    def get_user_rating_stats(self, user_id):
        """
        Rating statistics for a user profile.

        Returns:
            dict: received (average, total, min, max, distribution 1-5)
                and given (average, total)
        """
        self._get_user(user_id)

        received = Rating.objects.filter(reviewee_id=user_id)
        given = Rating.objects.filter(reviewer_id=user_id)

        received_summary = received.aggregate(
            average=Avg('score'),
            total=Count('id'),
            lowest=Min('score'),
            highest=Max('score'),
        )
        given_summary = given.aggregate(average=Avg('score'), total=Count('id'))

        distribution = {star: 0 for star in range(1, 6)}
        for row in received.values('score').annotate(count=Count('id')):
            distribution[row['score']] = row['count']

        return {
            'received': {
                'average': _round_average(received_summary['average']),
                'total': received_summary['total'],
                'min': received_summary['lowest'],
                'max': received_summary['highest'],
                'distribution': distribution,
            },
            'given': {
                'average': _round_average(given_summary['average']),
                'total': given_summary['total'],
            },
        }

    # ========================================================================
    # Helpers
    # ========================================================================

    def _check_score(self, score):
        if not isinstance(score, int) or isinstance(score, bool) or not 1 <= score <= 5:
            raise ValidationError({'score': ['Rating must be an integer between 1 and 5.']})

    def _get_user(self, user_id):
        user = self.store.get_user(user_id)
        if user is None:
            raise NotFoundError('User not found.', code='user_not_found')
        return user

    def _get_own_rating(self, user_id, rating_id):
        rating = self.store.get_rating(rating_id, lock=True)
        if rating is None:
            raise NotFoundError('Rating not found.', code='rating_not_found')
        if rating.reviewer_id != user_id:
            logger.warning(
                f"User {user_id} attempted to modify rating {rating_id} "
                f"written by user {rating.reviewer_id}"
            )
            raise ForbiddenError('You can only modify your own ratings.', code='not_rating_author')
        return rating
