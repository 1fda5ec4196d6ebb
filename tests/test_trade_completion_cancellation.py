"""
Tests for completing and cancelling trades.

Test Coverage:
- Completion marks items SWAPPED and records who received each item
- Cancellation releases both items
- Either participant may complete or cancel; nobody else may
- Terminal trades refuse further transitions with distinct codes
- Item deletion after a cancelled trade
"""

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import DatabaseError
from django.test import TestCase

from core.choices import ItemStatus, TradeStatus
from core.exceptions import ForbiddenError, InvalidStateError, NotFoundError
from core.item_registry import ItemRegistry
from core.models import Item, SwappedItem, Trade
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


class FailingSwapStore(TradeStore):
    def create_swapped_items(self, trade):
        raise DatabaseError('simulated failure')


class TradeLifecycleTestMixin:

    def setUp(self):
        self.engine = TradeEngine()

        self.owner = User.objects.create_user(
            username='owner', email='owner@example.com', password='testpass123'
        )
        self.requester = User.objects.create_user(
            username='requester', email='requester@example.com', password='testpass123'
        )
        self.outsider = User.objects.create_user(
            username='outsider', email='outsider@example.com', password='testpass123'
        )

        self.wanted = create_item(self.owner, title='Road Bike')
        self.offered = create_item(self.requester, title='Guitar')

        trade_request = self.engine.create_trade_request(
            self.requester.pk, self.wanted.pk, self.offered.pk
        )
        self.trade = self.engine.accept_trade_request(self.owner.pk, trade_request.pk).trade


class TradeCompletionTests(TradeLifecycleTestMixin, TestCase):
    """Test suite for TradeEngine.complete_trade."""

    def test_complete_trade(self):
        trade = self.engine.complete_trade(self.owner.pk, self.trade.pk)

        self.assertEqual(trade.status, TradeStatus.COMPLETED)
        self.assertIsNotNone(trade.completed_at)
        self.assertIsNone(trade.cancelled_at)

        self.wanted.refresh_from_db()
        self.offered.refresh_from_db()
        self.assertEqual(self.wanted.status, ItemStatus.SWAPPED)
        self.assertEqual(self.offered.status, ItemStatus.SWAPPED)

    def test_requester_may_complete(self):
        trade = self.engine.complete_trade(self.requester.pk, self.trade.pk)
        self.assertEqual(trade.status, TradeStatus.COMPLETED)

    def test_completion_records_swapped_items(self):
        self.engine.complete_trade(self.owner.pk, self.trade.pk)

        records = {
            record.item_id: record.user_id
            for record in SwappedItem.objects.filter(trade=self.trade)
        }
        self.assertEqual(records, {
            self.wanted.pk: self.requester.pk,
            self.offered.pk: self.owner.pk,
        })

    def test_swapped_item_records_are_append_only(self):
        self.engine.complete_trade(self.owner.pk, self.trade.pk)
        record = SwappedItem.objects.filter(trade=self.trade).first()

        with self.assertRaises(ValidationError):
            record.save()

        with self.assertRaises(ValidationError):
            record.delete()

    def test_outsider_cannot_complete(self):
        with self.assertRaises(ForbiddenError) as context:
            self.engine.complete_trade(self.outsider.pk, self.trade.pk)
        self.assertEqual(context.exception.code, 'not_trade_participant')

    def test_missing_trade(self):
        with self.assertRaises(NotFoundError) as context:
            self.engine.complete_trade(self.owner.pk, 99999)
        self.assertEqual(context.exception.code, 'trade_not_found')

    def test_cannot_complete_twice(self):
        self.engine.complete_trade(self.owner.pk, self.trade.pk)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.complete_trade(self.requester.pk, self.trade.pk)
        self.assertEqual(context.exception.code, 'trade_not_pending')
        self.assertEqual(SwappedItem.objects.filter(trade=self.trade).count(), 2)

    def test_cannot_complete_cancelled_trade(self):
        self.engine.cancel_trade(self.owner.pk, self.trade.pk)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.complete_trade(self.owner.pk, self.trade.pk)
        self.assertEqual(context.exception.code, 'trade_not_pending')

    def test_completion_does_not_award_points(self):
        self.engine.complete_trade(self.owner.pk, self.trade.pk)

        self.owner.refresh_from_db()
        self.requester.refresh_from_db()
        self.assertEqual(self.owner.loyalty_points, 0)
        self.assertEqual(self.requester.loyalty_points, 0)

    def test_failed_completion_rolls_back(self):
        engine = TradeEngine(store=FailingSwapStore())

        with self.assertRaises(DatabaseError):
            engine.complete_trade(self.owner.pk, self.trade.pk)

        self.trade.refresh_from_db()
        self.wanted.refresh_from_db()
        self.assertEqual(self.trade.status, TradeStatus.PENDING)
        self.assertIsNone(self.trade.completed_at)
        self.assertEqual(self.wanted.status, ItemStatus.RESERVED)
        self.assertFalse(SwappedItem.objects.exists())

    def test_swapped_items_cannot_be_restatused_by_owner(self):
        self.engine.complete_trade(self.owner.pk, self.trade.pk)

        with self.assertRaises(InvalidStateError) as context:
            ItemRegistry().update_status(self.owner.pk, self.wanted.pk, ItemStatus.AVAILABLE)
        self.assertEqual(context.exception.code, 'item_in_trade')


class TradeCancellationTests(TradeLifecycleTestMixin, TestCase):
    """Test suite for TradeEngine.cancel_trade."""

    def test_cancel_trade_releases_items(self):
        trade = self.engine.cancel_trade(self.requester.pk, self.trade.pk)

        self.assertEqual(trade.status, TradeStatus.CANCELLED)
        self.assertIsNotNone(trade.cancelled_at)
        self.assertIsNone(trade.completed_at)

        self.wanted.refresh_from_db()
        self.offered.refresh_from_db()
        self.assertEqual(self.wanted.status, ItemStatus.AVAILABLE)
        self.assertEqual(self.offered.status, ItemStatus.AVAILABLE)

    def test_released_items_can_be_requested_again(self):
        self.engine.cancel_trade(self.owner.pk, self.trade.pk)

        trade_request = self.engine.create_trade_request(
            self.requester.pk, self.wanted.pk, self.offered.pk
        )
        self.assertIsNotNone(trade_request.pk)

    def test_outsider_cannot_cancel(self):
        with self.assertRaises(ForbiddenError):
            self.engine.cancel_trade(self.outsider.pk, self.trade.pk)

        self.trade.refresh_from_db()
        self.assertEqual(self.trade.status, TradeStatus.PENDING)

    def test_cannot_cancel_completed_trade(self):
        self.engine.complete_trade(self.owner.pk, self.trade.pk)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.cancel_trade(self.owner.pk, self.trade.pk)
        self.assertEqual(context.exception.code, 'trade_already_completed')

        self.wanted.refresh_from_db()
        self.assertEqual(self.wanted.status, ItemStatus.SWAPPED)

    def test_cannot_cancel_twice(self):
        self.engine.cancel_trade(self.owner.pk, self.trade.pk)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.cancel_trade(self.requester.pk, self.trade.pk)
        self.assertEqual(context.exception.code, 'trade_already_cancelled')

    def test_item_deletable_after_cancellation(self):
        self.engine.cancel_trade(self.owner.pk, self.trade.pk)

        ItemRegistry().delete_item(self.owner.pk, self.wanted.pk)

        self.assertFalse(Item.objects.filter(pk=self.wanted.pk).exists())
        self.assertFalse(Trade.objects.filter(pk=self.trade.pk).exists())

    def test_reserved_item_cannot_be_deleted(self):
        with self.assertRaises(InvalidStateError) as context:
            ItemRegistry().delete_item(self.owner.pk, self.wanted.pk)
        self.assertEqual(context.exception.code, 'item_not_deletable')


class TradeQueryTests(TradeLifecycleTestMixin, TestCase):

    def test_user_trades_include_both_roles(self):
        self.assertEqual(list(self.engine.get_user_trades(self.owner.pk)), [self.trade])
        self.assertEqual(list(self.engine.get_user_trades(self.requester.pk)), [self.trade])
        self.assertEqual(list(self.engine.get_user_trades(self.outsider.pk)), [])

    def test_user_trades_status_filter(self):
        self.assertEqual(
            self.engine.get_user_trades(self.owner.pk, status=TradeStatus.COMPLETED).count(), 0
        )
        self.engine.complete_trade(self.owner.pk, self.trade.pk)
        self.assertEqual(
            self.engine.get_user_trades(self.owner.pk, status=TradeStatus.COMPLETED).count(), 1
        )

    def test_completed_trades(self):
        self.assertEqual(list(self.engine.get_completed_trades(self.requester.pk)), [])
        self.engine.complete_trade(self.owner.pk, self.trade.pk)
        self.assertEqual(list(self.engine.get_completed_trades(self.requester.pk)), [self.trade])

    def test_received_and_sent_requests(self):
        received = list(self.engine.get_received_requests(self.owner.pk))
        sent = list(self.engine.get_sent_requests(self.requester.pk))

        self.assertEqual(len(received), 1)
        self.assertEqual(received, sent)
        self.assertEqual(sent[0].trade, self.trade)
        self.assertEqual(list(self.engine.get_received_requests(self.requester.pk)), [])
