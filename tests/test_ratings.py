"""
Tests for the rating ledger.

Test Coverage:
- Rating the other party of a completed trade grants loyalty points
- Every refusal with its error code
- Score updates adjust points by the reward difference
- Deleting a rating takes back exactly what it granted
- Pending ratings, per-user rating lists and statistics
"""

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase
from rest_framework.exceptions import ValidationError

from core.choices import TradeStatus
from core.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from core.ledger import RatingLedger
from core.models import Item, Rating
from core.store import TradeStore
from core.trade_engine import TradeEngine

User = get_user_model()


def create_item(owner, title='Desk Lamp'):
    return Item.objects.create(
        owner=owner,
        title=title,
        description='A perfectly good item to swap.',
        category='Home',
        condition='GOOD',
    )


def make_trade(engine, owner, requester, complete=True):
    """Create, accept and (optionally) complete a trade between two users."""
    wanted = create_item(owner, title='Road Bike')
    offered = create_item(requester, title='Guitar')
    trade_request = engine.create_trade_request(requester.pk, wanted.pk, offered.pk)
    trade = engine.accept_trade_request(owner.pk, trade_request.pk).trade
    if complete:
        trade = engine.complete_trade(owner.pk, trade.pk)
    return trade


class RatingLedgerTestMixin:

    def setUp(self):
        self.engine = TradeEngine()
        self.ledger = RatingLedger()

        self.owner = User.objects.create_user(
            username='owner', email='owner@example.com', password='testpass123'
        )
        self.requester = User.objects.create_user(
            username='requester', email='requester@example.com', password='testpass123'
        )
        self.outsider = User.objects.create_user(
            username='outsider', email='outsider@example.com', password='testpass123'
        )

        self.trade = make_trade(self.engine, self.owner, self.requester)

    def points(self, user):
        user.refresh_from_db()
        return user.loyalty_points


class RatingCreationTests(RatingLedgerTestMixin, TestCase):
    """Test suite for RatingLedger.create_rating."""

    def test_create_rating_awards_points(self):
        rating = self.ledger.create_rating(
            self.requester.pk, self.owner.pk, self.trade.pk, 5, 'Smooth swap!'
        )

        self.assertEqual(rating.score, 5)
        self.assertEqual(rating.points_awarded, 10)
        self.assertEqual(rating.comment, 'Smooth swap!')
        self.assertEqual(self.points(self.owner), 10)
        self.assertEqual(self.points(self.requester), 0)

    def test_reward_per_score(self):
        expected = {5: 10, 4: 5, 3: 2, 2: 0, 1: -5}
        for score, points in expected.items():
            with self.subTest(score=score):
                trade = make_trade(self.engine, self.owner, self.requester)
                before = self.points(self.requester)
                rating = self.ledger.create_rating(self.owner.pk, self.requester.pk, trade.pk, score)
                self.assertEqual(rating.points_awarded, points)
                self.assertEqual(self.points(self.requester) - before, points)

    def test_both_parties_can_rate_each_other(self):
        self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)
        self.ledger.create_rating(self.owner.pk, self.requester.pk, self.trade.pk, 4)

        self.assertEqual(self.points(self.owner), 10)
        self.assertEqual(self.points(self.requester), 5)
        self.assertEqual(Rating.objects.filter(trade=self.trade).count(), 2)

    def test_self_rating(self):
        with self.assertRaises(InvalidStateError) as context:
            self.ledger.create_rating(self.owner.pk, self.owner.pk, self.trade.pk, 5)
        self.assertEqual(context.exception.code, 'self_rating')

    def test_missing_trade(self):
        with self.assertRaises(NotFoundError) as context:
            self.ledger.create_rating(self.requester.pk, self.owner.pk, 99999, 5)
        self.assertEqual(context.exception.code, 'trade_not_found')

    def test_pending_trade_cannot_be_rated(self):
        pending = make_trade(self.engine, self.owner, self.requester, complete=False)

        with self.assertRaises(InvalidStateError) as context:
            self.ledger.create_rating(self.requester.pk, self.owner.pk, pending.pk, 5)
        self.assertEqual(context.exception.code, 'trade_not_completed')

    def test_cancelled_trade_cannot_be_rated(self):
        pending = make_trade(self.engine, self.owner, self.requester, complete=False)
        self.engine.cancel_trade(self.owner.pk, pending.pk)

        with self.assertRaises(InvalidStateError) as context:
            self.ledger.create_rating(self.requester.pk, self.owner.pk, pending.pk, 5)
        self.assertEqual(context.exception.code, 'trade_not_completed')

    def test_outsider_cannot_rate(self):
        with self.assertRaises(ForbiddenError) as context:
            self.ledger.create_rating(self.outsider.pk, self.owner.pk, self.trade.pk, 5)
        self.assertEqual(context.exception.code, 'not_trade_participant')

    def test_reviewee_must_be_other_party(self):
        with self.assertRaises(ForbiddenError) as context:
            self.ledger.create_rating(self.requester.pk, self.outsider.pk, self.trade.pk, 5)
        self.assertEqual(context.exception.code, 'reviewee_not_participant')

    def test_duplicate_rating(self):
        self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)

        with self.assertRaises(ConflictError) as context:
            self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 3)
        self.assertEqual(context.exception.code, 'duplicate_rating')
        self.assertEqual(self.points(self.owner), 10)

    def test_invalid_score(self):
        for score in (0, 6, '5', 4.5, True):
            with self.subTest(score=score):
                with self.assertRaises(ValidationError):
                    self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, score)
        self.assertFalse(Rating.objects.exists())

    def test_same_pair_can_rate_again_on_a_new_trade(self):
        self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)
        second = make_trade(self.engine, self.owner, self.requester)
        self.ledger.create_rating(self.requester.pk, self.owner.pk, second.pk, 5)

        self.assertEqual(self.points(self.owner), 20)


class RatingModificationTests(RatingLedgerTestMixin, TestCase):
    """Test suite for RatingLedger.update_rating and delete_rating."""

    def setUp(self):
        super().setUp()
        self.rating = self.ledger.create_rating(
            self.requester.pk, self.owner.pk, self.trade.pk, 5, 'Great'
        )

    def test_score_change_applies_reward_difference(self):
        rating = self.ledger.update_rating(self.requester.pk, self.rating.pk, score=1)

        self.assertEqual(rating.points_awarded, -5)
        self.assertEqual(self.points(self.owner), -5)

        rating.refresh_from_db()
        self.assertEqual(rating.score, 1)
        self.assertEqual(rating.points_awarded, -5)

    def test_repeated_updates_never_drift(self):
        for score in (3, 4, 2, 5, 4):
            self.ledger.update_rating(self.requester.pk, self.rating.pk, score=score)

        self.assertEqual(self.points(self.owner), 5)

    def test_comment_only_update_keeps_points(self):
        rating = self.ledger.update_rating(self.requester.pk, self.rating.pk, comment='Even better')

        self.assertEqual(rating.comment, 'Even better')
        self.assertEqual(self.points(self.owner), 10)

    def test_same_score_update_keeps_points(self):
        self.ledger.update_rating(self.requester.pk, self.rating.pk, score=5)
        self.assertEqual(self.points(self.owner), 10)

    def test_only_author_can_update(self):
        with self.assertRaises(ForbiddenError) as context:
            self.ledger.update_rating(self.owner.pk, self.rating.pk, score=1)
        self.assertEqual(context.exception.code, 'not_rating_author')
        self.assertEqual(self.points(self.owner), 10)

    def test_update_missing_rating(self):
        with self.assertRaises(NotFoundError) as context:
            self.ledger.update_rating(self.requester.pk, 99999, score=1)
        self.assertEqual(context.exception.code, 'rating_not_found')

    def test_delete_reverses_points(self):
        points = self.ledger.delete_rating(self.requester.pk, self.rating.pk)

        self.assertEqual(points, 10)
        self.assertEqual(self.points(self.owner), 0)
        self.assertFalse(Rating.objects.filter(pk=self.rating.pk).exists())

    def test_delete_after_update_reverses_current_award(self):
        self.ledger.update_rating(self.requester.pk, self.rating.pk, score=1)
        self.ledger.delete_rating(self.requester.pk, self.rating.pk)

        self.assertEqual(self.points(self.owner), 0)

    def test_only_author_can_delete(self):
        with self.assertRaises(ForbiddenError):
            self.ledger.delete_rating(self.outsider.pk, self.rating.pk)
        self.assertTrue(Rating.objects.filter(pk=self.rating.pk).exists())

    def test_rated_again_after_delete(self):
        self.ledger.delete_rating(self.requester.pk, self.rating.pk)
        self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 4)

        self.assertEqual(self.points(self.owner), 5)


class RecordingStore(TradeStore):
    """Store that remembers every point increment made through it."""

    def __init__(self):
        self.increments = []

    def increment_loyalty_points(self, user_id, delta):
        self.increments.append((user_id, delta))
        return super().increment_loyalty_points(user_id, delta)


class FailingPointsStore(TradeStore):
    def increment_loyalty_points(self, user_id, delta):
        raise DatabaseError('simulated failure')


class RatingLedgerStoreTests(RatingLedgerTestMixin, TestCase):
    """Point bookkeeping goes through the store the ledger was given."""

    def test_point_updates_use_injected_store(self):
        store = RecordingStore()
        ledger = RatingLedger(store=store)

        rating = ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)
        ledger.update_rating(self.requester.pk, rating.pk, score=4)
        ledger.delete_rating(self.requester.pk, rating.pk)

        self.assertEqual(
            store.increments,
            [(self.owner.pk, 10), (self.owner.pk, -5), (self.owner.pk, -5)]
        )
        self.assertEqual(self.points(self.owner), 0)

    def test_failing_store_rolls_back_rating(self):
        ledger = RatingLedger(store=FailingPointsStore())

        with self.assertRaises(DatabaseError):
            ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)

        self.assertFalse(Rating.objects.exists())
        self.assertEqual(self.points(self.owner), 0)

    def test_failing_store_rolls_back_delete(self):
        rating = self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)

        with self.assertRaises(DatabaseError):
            RatingLedger(store=FailingPointsStore()).delete_rating(self.requester.pk, rating.pk)

        self.assertTrue(Rating.objects.filter(pk=rating.pk).exists())
        self.assertEqual(self.points(self.owner), 10)


class RatingQueryTests(RatingLedgerTestMixin, TestCase):

    def test_pending_ratings(self):
        pending = self.ledger.get_pending_ratings(self.requester.pk)

        self.assertEqual(len(pending), 1)
        self.assertEqual(pending[0]['trade'], self.trade)
        self.assertEqual(pending[0]['user_to_rate'], self.owner)

        self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)

        self.assertEqual(self.ledger.get_pending_ratings(self.requester.pk), [])
        # The owner still has to rate the requester
        owner_pending = self.ledger.get_pending_ratings(self.owner.pk)
        self.assertEqual(len(owner_pending), 1)
        self.assertEqual(owner_pending[0]['user_to_rate'], self.requester)

    def test_pending_ratings_ignore_unfinished_trades(self):
        make_trade(self.engine, self.owner, self.requester, complete=False)

        pending = self.ledger.get_pending_ratings(self.owner.pk)
        self.assertEqual([entry['trade'].status for entry in pending], [TradeStatus.COMPLETED])

    def test_user_ratings(self):
        second = make_trade(self.engine, self.owner, self.requester)
        self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)
        self.ledger.create_rating(self.requester.pk, self.owner.pk, second.pk, 4)

        received = self.ledger.get_user_ratings(self.owner.pk, 'received')
        self.assertEqual(received['total'], 2)
        self.assertEqual(received['average'], 4.5)
        self.assertEqual(received['ratings'].count(), 2)

        given = self.ledger.get_user_ratings(self.requester.pk, 'given')
        self.assertEqual(given['total'], 2)

        nothing = self.ledger.get_user_ratings(self.outsider.pk)
        self.assertEqual(nothing['total'], 0)
        self.assertIsNone(nothing['average'])

    def test_user_ratings_invalid_kind(self):
        with self.assertRaises(ValidationError):
            self.ledger.get_user_ratings(self.owner.pk, 'everything')

    def test_user_ratings_missing_user(self):
        with self.assertRaises(NotFoundError):
            self.ledger.get_user_ratings(99999)

    def test_rating_stats(self):
        second = make_trade(self.engine, self.owner, self.requester)
        third = make_trade(self.engine, self.owner, self.requester)
        self.ledger.create_rating(self.requester.pk, self.owner.pk, self.trade.pk, 5)
        self.ledger.create_rating(self.requester.pk, self.owner.pk, second.pk, 5)
        self.ledger.create_rating(self.requester.pk, self.owner.pk, third.pk, 2)
        self.ledger.create_rating(self.owner.pk, self.requester.pk, self.trade.pk, 3)

        stats = self.ledger.get_user_rating_stats(self.owner.pk)

        self.assertEqual(stats['received']['total'], 3)
        self.assertEqual(stats['received']['average'], 4.0)
        self.assertEqual(stats['received']['min'], 2)
        self.assertEqual(stats['received']['max'], 5)
        self.assertEqual(stats['received']['distribution'], {1: 0, 2: 1, 3: 0, 4: 0, 5: 2})
        self.assertEqual(stats['given']['total'], 1)
        self.assertEqual(stats['given']['average'], 3.0)
