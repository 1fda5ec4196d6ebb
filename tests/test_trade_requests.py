"""
Tests for proposing and rejecting trade requests through the TradeEngine.

Test Coverage:
- Successful request creation (items stay AVAILABLE)
- Every refusal with its error code, in check order
- Duplicate pending requests (service check and database constraint)
- Rejection by the owner and refusals for everybody else
"""

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase, skipUnlessDBFeature

from core.choices import ItemStatus, TradeRequestStatus
from core.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from core.models import Item, TradeRequest
from core.trade_engine import TradeEngine

User = get_user_model()


def create_item(owner, title='Desk Lamp', status=ItemStatus.AVAILABLE):
    return Item.objects.create(
        owner=owner,
        title=title,
        description='A perfectly good item to swap.',
        category='Home',
        condition='GOOD',
        status=status,
    )


class TradeRequestCreationTests(TestCase):
    """Test suite for TradeEngine.create_trade_request."""

    def setUp(self):
        self.engine = TradeEngine()

        self.owner = User.objects.create_user(
            username='owner', email='owner@example.com', password='testpass123'
        )
        self.requester = User.objects.create_user(
            username='requester', email='requester@example.com', password='testpass123'
        )

        self.wanted = create_item(self.owner, title='Road Bike')
        self.offered = create_item(self.requester, title='Guitar')

    def assertCode(self, context, code):
        self.assertEqual(context.exception.code, code)

    def test_create_request_success(self):
        trade_request = self.engine.create_trade_request(
            self.requester.pk, self.wanted.pk, self.offered.pk, 'Would you swap?'
        )

        self.assertEqual(trade_request.status, TradeRequestStatus.PENDING)
        self.assertEqual(trade_request.requester_id, self.requester.pk)
        self.assertEqual(trade_request.requested_item_id, self.wanted.pk)
        self.assertEqual(trade_request.offered_item_id, self.offered.pk)
        self.assertEqual(trade_request.message, 'Would you swap?')
        self.assertIsNone(trade_request.responded_at)

    def test_request_does_not_reserve_items(self):
        self.engine.create_trade_request(self.requester.pk, self.wanted.pk, self.offered.pk)

        self.wanted.refresh_from_db()
        self.offered.refresh_from_db()
        self.assertEqual(self.wanted.status, ItemStatus.AVAILABLE)
        self.assertEqual(self.offered.status, ItemStatus.AVAILABLE)

    def test_same_item_is_refused(self):
        with self.assertRaises(InvalidStateError) as context:
            self.engine.create_trade_request(self.requester.pk, self.offered.pk, self.offered.pk)
        self.assertCode(context, 'same_item')

    def test_missing_requested_item(self):
        with self.assertRaises(NotFoundError) as context:
            self.engine.create_trade_request(self.requester.pk, 99999, self.offered.pk)
        self.assertCode(context, 'requested_item_not_found')

    def test_missing_offered_item(self):
        with self.assertRaises(NotFoundError) as context:
            self.engine.create_trade_request(self.requester.pk, self.wanted.pk, 99999)
        self.assertCode(context, 'offered_item_not_found')

    def test_unavailable_requested_item(self):
        Item.objects.filter(pk=self.wanted.pk).update(status=ItemStatus.RESERVED)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.create_trade_request(self.requester.pk, self.wanted.pk, self.offered.pk)
        self.assertCode(context, 'requested_item_unavailable')

    def test_unavailable_offered_item(self):
        Item.objects.filter(pk=self.offered.pk).update(status=ItemStatus.UNAVAILABLE)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.create_trade_request(self.requester.pk, self.wanted.pk, self.offered.pk)
        self.assertCode(context, 'offered_item_unavailable')

    def test_offering_someone_elses_item(self):
        third = User.objects.create_user(
            username='third', email='third@example.com', password='testpass123'
        )
        foreign = create_item(third, title='Headphones')

        with self.assertRaises(ForbiddenError) as context:
            self.engine.create_trade_request(self.requester.pk, self.wanted.pk, foreign.pk)
        self.assertCode(context, 'offered_item_not_owned')

    def test_requesting_own_item(self):
        second_own = create_item(self.requester, title='Bookshelf')

        with self.assertRaises(InvalidStateError) as context:
            self.engine.create_trade_request(self.requester.pk, second_own.pk, self.offered.pk)
        self.assertCode(context, 'own_item_requested')

    def test_availability_checked_before_ownership(self):
        """An unavailable item is reported even when ownership is also wrong."""
        Item.objects.filter(pk=self.wanted.pk).update(status=ItemStatus.SWAPPED)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.create_trade_request(self.owner.pk, self.wanted.pk, self.offered.pk)
        self.assertCode(context, 'requested_item_unavailable')

    def test_duplicate_pending_request(self):
        self.engine.create_trade_request(self.requester.pk, self.wanted.pk, self.offered.pk)

        with self.assertRaises(ConflictError) as context:
            self.engine.create_trade_request(self.requester.pk, self.wanted.pk, self.offered.pk)
        self.assertCode(context, 'duplicate_pending_request')
        self.assertEqual(TradeRequest.objects.count(), 1)

    def test_new_request_allowed_after_rejection(self):
        first = self.engine.create_trade_request(self.requester.pk, self.wanted.pk, self.offered.pk)
        self.engine.reject_trade_request(self.owner.pk, first.pk)

        second = self.engine.create_trade_request(self.requester.pk, self.wanted.pk, self.offered.pk)

        self.assertNotEqual(first.pk, second.pk)
        self.assertEqual(second.status, TradeRequestStatus.PENDING)

    @skipUnlessDBFeature('supports_partial_indexes')
    def test_database_rejects_duplicate_pending_request(self):
        TradeRequest.objects.create(
            requester=self.requester, requested_item=self.wanted, offered_item=self.offered
        )

        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                TradeRequest.objects.create(
                    requester=self.requester, requested_item=self.wanted, offered_item=self.offered
                )

    @skipUnlessDBFeature('supports_table_check_constraints')
    def test_database_rejects_same_item_request(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                TradeRequest.objects.create(
                    requester=self.requester, requested_item=self.offered, offered_item=self.offered
                )


class TradeRequestRejectionTests(TestCase):
    """Test suite for TradeEngine.reject_trade_request."""

    def setUp(self):
        self.engine = TradeEngine()

        self.owner = User.objects.create_user(
            username='owner', email='owner@example.com', password='testpass123'
        )
        self.requester = User.objects.create_user(
            username='requester', email='requester@example.com', password='testpass123'
        )

        self.wanted = create_item(self.owner, title='Road Bike')
        self.offered = create_item(self.requester, title='Guitar')
        self.trade_request = self.engine.create_trade_request(
            self.requester.pk, self.wanted.pk, self.offered.pk
        )

    def test_owner_rejects_request(self):
        trade_request = self.engine.reject_trade_request(self.owner.pk, self.trade_request.pk)

        self.assertEqual(trade_request.status, TradeRequestStatus.REJECTED)
        self.assertIsNotNone(trade_request.responded_at)

        self.trade_request.refresh_from_db()
        self.assertEqual(self.trade_request.status, TradeRequestStatus.REJECTED)

    def test_rejection_leaves_items_available(self):
        self.engine.reject_trade_request(self.owner.pk, self.trade_request.pk)

        self.wanted.refresh_from_db()
        self.offered.refresh_from_db()
        self.assertEqual(self.wanted.status, ItemStatus.AVAILABLE)
        self.assertEqual(self.offered.status, ItemStatus.AVAILABLE)

    def test_requester_cannot_reject(self):
        with self.assertRaises(ForbiddenError) as context:
            self.engine.reject_trade_request(self.requester.pk, self.trade_request.pk)
        self.assertEqual(context.exception.code, 'not_request_owner')

    def test_missing_request(self):
        with self.assertRaises(NotFoundError) as context:
            self.engine.reject_trade_request(self.owner.pk, 99999)
        self.assertEqual(context.exception.code, 'trade_request_not_found')

    def test_cannot_reject_twice(self):
        self.engine.reject_trade_request(self.owner.pk, self.trade_request.pk)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.reject_trade_request(self.owner.pk, self.trade_request.pk)
        self.assertEqual(context.exception.code, 'request_not_pending')

    def test_cannot_accept_rejected_request(self):
        self.engine.reject_trade_request(self.owner.pk, self.trade_request.pk)

        with self.assertRaises(InvalidStateError) as context:
            self.engine.accept_trade_request(self.owner.pk, self.trade_request.pk)
        self.assertEqual(context.exception.code, 'request_not_pending')
