"""
Concurrency tests for the trade lifecycle.

Two owners' decisions race on shared items; row locks taken in item-id
order must let exactly one of them win without deadlocking. They run on
the default SQLite file database and on backends with SELECT ... FOR UPDATE.
"""

from django.contrib.auth import get_user_model
from django.test import TransactionTestCase

from core.choices import ItemStatus, TradeRequestStatus, TradeStatus
from core.exceptions import TradeError
from core.models import Item, Trade, TradeRequest
from core.trade_engine import TradeEngine

from .concurrency import run_concurrently, serializes_concurrent_writers

User = get_user_model()


def create_item(owner, title):
    return Item.objects.create(
        owner=owner,
        title=title,
        description='A perfectly good item to swap.',
        category='Home',
        condition='GOOD',
    )


class TradeConcurrencyTests(TransactionTestCase):

    def setUp(self):
        if not serializes_concurrent_writers():
            self.skipTest('database does not serialise concurrent writers')

        self.owner = User.objects.create_user(
            username='owner', email='owner@test.com', password='testpass123'
        )
        self.first = User.objects.create_user(
            username='first', email='first@test.com', password='testpass123'
        )
        self.second = User.objects.create_user(
            username='second', email='second@test.com', password='testpass123'
        )

        engine = TradeEngine()
        self.wanted = create_item(self.owner, 'Road Bike')
        first_offer = create_item(self.first, 'Guitar')
        second_offer = create_item(self.second, 'Headphones')

        self.first_request = engine.create_trade_request(self.first.pk, self.wanted.pk, first_offer.pk)
        self.second_request = engine.create_trade_request(self.second.pk, self.wanted.pk, second_offer.pk)

    def test_only_one_competing_request_is_accepted(self):
        results = run_concurrently(
            lambda: TradeEngine().accept_trade_request(self.owner.pk, self.first_request.pk),
            lambda: TradeEngine().accept_trade_request(self.owner.pk, self.second_request.pk),
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        failures = [r for r in results if isinstance(r, Exception)]

        self.assertEqual(len(successes), 1)
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], TradeError)
        self.assertIn(failures[0].code, ('request_not_pending', 'requested_item_unavailable'))

        self.assertEqual(Trade.objects.count(), 1)
        self.wanted.refresh_from_db()
        self.assertEqual(self.wanted.status, ItemStatus.RESERVED)

        self.first_request.refresh_from_db()
        self.second_request.refresh_from_db()
        self.assertEqual(
            sorted([self.first_request.status, self.second_request.status]),
            [TradeRequestStatus.ACCEPTED, TradeRequestStatus.REJECTED]
        )

    def test_complete_and_cancel_race(self):
        trade = TradeEngine().accept_trade_request(self.owner.pk, self.first_request.pk).trade

        results = run_concurrently(
            lambda: TradeEngine().complete_trade(self.owner.pk, trade.pk),
            lambda: TradeEngine().cancel_trade(self.first.pk, trade.pk),
        )

        failures = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], TradeError)

        trade.refresh_from_db()
        self.wanted.refresh_from_db()
        if trade.status == TradeStatus.COMPLETED:
            self.assertEqual(self.wanted.status, ItemStatus.SWAPPED)
        else:
            self.assertEqual(trade.status, TradeStatus.CANCELLED)
            self.assertEqual(self.wanted.status, ItemStatus.AVAILABLE)

    def test_offered_item_is_reserved_at_most_once(self):
        """The same offered item, requested by two owners accepting at once."""
        other_owner = User.objects.create_user(
            username='other', email='other@test.com', password='testpass123'
        )
        lamp = create_item(other_owner, 'Desk Lamp')
        guitar = self.first_request.offered_item
        engine = TradeEngine()
        lamp_request = engine.create_trade_request(self.first.pk, lamp.pk, guitar.pk)

        results = run_concurrently(
            lambda: TradeEngine().accept_trade_request(self.owner.pk, self.first_request.pk),
            lambda: TradeEngine().accept_trade_request(other_owner.pk, lamp_request.pk),
        )

        failures = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], TradeError)

        self.assertEqual(Trade.objects.count(), 1)
        self.assertEqual(
            Trade.objects.filter(offered_item=guitar).count(), 1
        )
        self.assertEqual(
            Item.objects.filter(status=ItemStatus.RESERVED).count(), 2
        )

    def test_identical_requests_race(self):
        """Only one of two simultaneous identical requests is created."""
        lamp = create_item(self.owner, 'Desk Lamp')
        drum = create_item(self.second, 'Snare Drum')

        results = run_concurrently(
            lambda: TradeEngine().create_trade_request(self.second.pk, lamp.pk, drum.pk),
            lambda: TradeEngine().create_trade_request(self.second.pk, lamp.pk, drum.pk),
        )

        failures = [r for r in results if isinstance(r, Exception)]
        self.assertEqual(len(failures), 1)
        self.assertIsInstance(failures[0], TradeError)
        self.assertEqual(failures[0].code, 'duplicate_pending_request')

        self.assertEqual(
            TradeRequest.objects.filter(
                requested_item=lamp, offered_item=drum, status=TradeRequestStatus.PENDING
            ).count(),
            1
        )
