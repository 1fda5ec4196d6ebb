"""
Trade Lifecycle Engine.

Moves trade requests through PENDING -> ACCEPTED / REJECTED and trades
through PENDING -> COMPLETED / CANCELLED, keeping item availability and
competing requests consistent under concurrent access.

Locking discipline: every mutating operation locks the two item rows first,
in primary-key order, and only then the trade request or trade row. Two
operations touching a common item therefore serialize on that item, and no
pair of transactions can hold each other's rows. Nothing is retried; a
database error propagates to the caller and rolls the whole step back.
"""

import logging
from collections import namedtuple

from django.db import IntegrityError
from django.db.models import Prefetch, Q

from .choices import ItemStatus, TradeRequestStatus, TradeStatus
from .exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from .item_registry import ItemRegistry
from .models import Rating, Trade, TradeRequest
from .store import TradeStore

logger = logging.getLogger(__name__)

AcceptedTrade = namedtuple('AcceptedTrade', ['trade', 'trade_request', 'rejected_count'])


class TradeEngine:
    """
    Orchestrates trade requests and trades.

    Args:
        store: TradeStore used for every read and write (injected for tests)
        items: ItemRegistry sharing the same store
    """

    def __init__(self, store=None, items=None):
        self.store = store or TradeStore()
        self.items = items or ItemRegistry(store=self.store)

    # ========================================================================
    # Trade requests
    # ========================================================================

    def create_trade_request(self, requester_id, requested_item_id, offered_item_id, message=''):
        """
        Propose exchanging ``offered_item_id`` for ``requested_item_id``.

        Checks, in order, each with its own error code:
        1. Items differ (same_item)
        2. Requested item exists (requested_item_not_found)
        3. Offered item exists (offered_item_not_found)
        4. Requested item is AVAILABLE (requested_item_unavailable)
        5. Offered item is AVAILABLE (offered_item_unavailable)
        6. Requester owns the offered item (offered_item_not_owned)
        7. Requester does not own the requested item (own_item_requested)
        8. No identical PENDING request exists (duplicate_pending_request)

        Items stay AVAILABLE: a request reserves nothing.

        Returns:
            TradeRequest: The new PENDING request
        """
        if requested_item_id == offered_item_id:
            raise InvalidStateError('Cannot trade the same item.', code='same_item')

        with self.store.atomic():
            locked = self.items.lock([requested_item_id, offered_item_id])
            requested_item = locked.get(requested_item_id)
            offered_item = locked.get(offered_item_id)

            if requested_item is None:
                raise NotFoundError('Requested item not found.', code='requested_item_not_found')

            if offered_item is None:
                raise NotFoundError('Offered item not found.', code='offered_item_not_found')

            if requested_item.status != ItemStatus.AVAILABLE:
                raise InvalidStateError(
                    'Requested item is not available.',
                    code='requested_item_unavailable'
                )

            if offered_item.status != ItemStatus.AVAILABLE:
                raise InvalidStateError(
                    'Offered item is not available.',
                    code='offered_item_unavailable'
                )

            if not self.items.is_owned_by(offered_item, requester_id):
                raise ForbiddenError(
                    'You can only offer your own items.',
                    code='offered_item_not_owned'
                )

            if self.items.is_owned_by(requested_item, requester_id):
                raise InvalidStateError(
                    'Cannot request your own item.',
                    code='own_item_requested'
                )

            if self.store.find_pending_request(requester_id, requested_item_id, offered_item_id):
                raise ConflictError(
                    'You already have a pending request for this trade.',
                    code='duplicate_pending_request'
                )

            try:
                with self.store.atomic():
                    trade_request = self.store.create_trade_request(
                        requester_id, requested_item_id, offered_item_id, message
                    )
            except IntegrityError:
                logger.warning(
                    f"Duplicate pending trade request rejected by the database. "
                    f"Requester ID: {requester_id}, Requested item: {requested_item_id}, "
                    f"Offered item: {offered_item_id}"
                )
                raise ConflictError(
                    'You already have a pending request for this trade.',
                    code='duplicate_pending_request'
                )

        logger.info(
            f"Trade request created. Request ID: {trade_request.pk}, "
            f"Requester ID: {requester_id}, Requested item: {requested_item_id}, "
            f"Offered item: {offered_item_id}"
        )
        return trade_request

    def accept_trade_request(self, user_id, request_id):
        """
        Accept a pending request and open a trade for it.

        Effects, all or nothing:
        - Request -> ACCEPTED
        - New PENDING trade between the item owner and the requester
        - Both items -> RESERVED
        - Every other PENDING request naming either item -> REJECTED

        Args:
            user_id: Owner of the requested item
            request_id: TradeRequest primary key

        Returns:
            AcceptedTrade: (trade, trade_request, rejected_count)

        Raises:
            NotFoundError: Request does not exist
            ForbiddenError: User does not own the requested item
            InvalidStateError: Request not PENDING or an item not AVAILABLE
        """
        with self.store.atomic():
            trade_request = self._lock_request(request_id)
            requested_item = trade_request.requested_item
            offered_item = trade_request.offered_item

            if not self.items.is_owned_by(requested_item, user_id):
                raise ForbiddenError(
                    'You can only accept requests for your own items.',
                    code='not_request_owner'
                )

            if not trade_request.can_transition_to(TradeRequestStatus.ACCEPTED):
                raise InvalidStateError(
                    'Trade request is no longer pending.',
                    code='request_not_pending'
                )

            if requested_item.status != ItemStatus.AVAILABLE:
                raise InvalidStateError(
                    'Your item is no longer available.',
                    code='requested_item_unavailable'
                )

            if offered_item.status != ItemStatus.AVAILABLE:
                raise InvalidStateError(
                    'Offered item is no longer available.',
                    code='offered_item_unavailable'
                )

            self.store.set_trade_request_status(trade_request, TradeRequestStatus.ACCEPTED)
            trade = self.store.create_trade(trade_request, owner_id=requested_item.owner_id)
            self.items.set_status([requested_item, offered_item], ItemStatus.RESERVED)
            rejected_count = self.store.reject_competing_requests(
                trade_request.pk, [requested_item.pk, offered_item.pk]
            )

        logger.info(
            f"Trade request accepted. Request ID: {trade_request.pk}, Trade ID: {trade.pk}, "
            f"Owner ID: {user_id}, Requester ID: {trade_request.requester_id}, "
            f"Competing requests rejected: {rejected_count}"
        )
        return AcceptedTrade(trade, trade_request, rejected_count)

    def reject_trade_request(self, user_id, request_id):
        """
        Reject a pending request. Item statuses are untouched.

        Raises:
            NotFoundError: Request does not exist
            ForbiddenError: User does not own the requested item
            InvalidStateError: Request not PENDING
        """
        with self.store.atomic():
            trade_request = self.store.get_trade_request(request_id, lock=True)
            if trade_request is None:
                raise NotFoundError('Trade request not found.', code='trade_request_not_found')

            if not self.items.is_owned_by(trade_request.requested_item, user_id):
                raise ForbiddenError(
                    'You can only reject requests for your own items.',
                    code='not_request_owner'
                )

            if not trade_request.can_transition_to(TradeRequestStatus.REJECTED):
                raise InvalidStateError(
                    'Trade request is no longer pending.',
                    code='request_not_pending'
                )

            self.store.set_trade_request_status(trade_request, TradeRequestStatus.REJECTED)

        logger.info(
            f"Trade request rejected. Request ID: {trade_request.pk}, Owner ID: {user_id}"
        )
        return trade_request

    # ========================================================================
    # Trades
    # ========================================================================

    def complete_trade(self, user_id, trade_id):
        """
        Complete a pending trade.

        Effects, all or nothing: trade -> COMPLETED with completed_at, both
        items -> SWAPPED, and one SwappedItem per item recording who
        received it. Completed trades become eligible for rating.

        Raises:
            NotFoundError: Trade does not exist
            ForbiddenError: User is not a participant
            InvalidStateError: Trade not PENDING (trade_not_pending)
        """
        with self.store.atomic():
            trade, locked = self._lock_trade(trade_id)
            self._check_participant(trade, user_id)

            if not trade.can_transition_to(TradeStatus.COMPLETED):
                raise InvalidStateError('Trade is not in pending status.', code='trade_not_pending')

            self.store.set_trade_status(trade, TradeStatus.COMPLETED)
            self.items.set_status(locked, ItemStatus.SWAPPED)
            self.store.create_swapped_items(trade)

        logger.info(
            f"Trade completed. Trade ID: {trade.pk}, Completed by user ID: {user_id}, "
            f"Owner ID: {trade.owner_id}, Requester ID: {trade.requester_id}"
        )
        return trade

    def cancel_trade(self, user_id, trade_id):
        """
        Cancel a pending trade and release both items.

        Raises:
            NotFoundError: Trade does not exist
            ForbiddenError: User is not a participant
            InvalidStateError: Trade already completed (trade_already_completed)
                or already cancelled (trade_already_cancelled)
        """
        with self.store.atomic():
            trade, locked = self._lock_trade(trade_id)
            self._check_participant(trade, user_id)

            if trade.status == TradeStatus.COMPLETED:
                raise InvalidStateError('Cannot cancel a completed trade.', code='trade_already_completed')

            if trade.status == TradeStatus.CANCELLED:
                raise InvalidStateError('Trade is already cancelled.', code='trade_already_cancelled')

            self.store.set_trade_status(trade, TradeStatus.CANCELLED)
            self.items.set_status(locked, ItemStatus.AVAILABLE)

        logger.info(
            f"Trade cancelled. Trade ID: {trade.pk}, Cancelled by user ID: {user_id}"
        )
        return trade

    # ========================================================================
    # Queries
    # ========================================================================

    def get_user_trades(self, user_id, status=None):
        """All trades the user takes part in, newest first."""
        queryset = Trade.objects.filter(
            Q(owner_id=user_id) | Q(requester_id=user_id)
        ).select_related('owner', 'requester', 'requested_item', 'offered_item')
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-created_at', '-pk')

    def get_received_requests(self, user_id, status=None):
        """Requests for items the user owns, newest first."""
        queryset = TradeRequest.objects.filter(
            requested_item__owner_id=user_id
        ).select_related('requester', 'requested_item', 'offered_item')
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-requested_at', '-pk')

    def get_sent_requests(self, user_id, status=None):
        """Requests the user made, with the trade they led to (if any)."""
        queryset = TradeRequest.objects.filter(
            requester_id=user_id
        ).select_related('requested_item', 'requested_item__owner', 'offered_item', 'trade')
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-requested_at', '-pk')

    def get_completed_trades(self, user_id):
        """Completed trades of the user with their ratings, most recently completed first."""
        return (
            Trade.objects
            .filter(Q(owner_id=user_id) | Q(requester_id=user_id), status=TradeStatus.COMPLETED)
            .select_related('owner', 'requester', 'requested_item', 'offered_item')
            .prefetch_related(
                Prefetch('ratings', queryset=Rating.objects.select_related('reviewer', 'reviewee'))
            )
            .order_by('-completed_at', '-pk')
        )

    # ========================================================================
    # Helpers
    # ========================================================================

    def _lock_request(self, request_id):
        """
        Lock a request's items, then the request itself.

        The item ids of a request never change, so reading them before
        taking the locks is safe.
        """
        trade_request = self.store.get_trade_request(request_id)
        if trade_request is None:
            raise NotFoundError('Trade request not found.', code='trade_request_not_found')

        locked = self.items.lock([trade_request.requested_item_id, trade_request.offered_item_id])

        trade_request = self.store.get_trade_request(request_id, lock=True)
        if trade_request is None:
            raise NotFoundError('Trade request not found.', code='trade_request_not_found')

        trade_request.requested_item = locked[trade_request.requested_item_id]
        trade_request.offered_item = locked[trade_request.offered_item_id]
        return trade_request

    def _lock_trade(self, trade_id):
        """
        Lock a trade's items, then the trade.

        Returns:
            tuple: (trade, [requested_item, offered_item])
        """
        trade = self.store.get_trade(trade_id)
        if trade is None:
            raise NotFoundError('Trade not found.', code='trade_not_found')

        locked = self.items.lock([trade.requested_item_id, trade.offered_item_id])
        trade = self.store.get_trade(trade_id, lock=True)
        if trade is None:
            raise NotFoundError('Trade not found.', code='trade_not_found')

        return trade, [locked[trade.requested_item_id], locked[trade.offered_item_id]]

    def _check_participant(self, trade, user_id):
        if not trade.is_participant(user_id):
            logger.warning(
                f"User {user_id} attempted to modify trade {trade.pk} they are not part of"
            )
            raise ForbiddenError(
                'You are not a participant of this trade.',
                code='not_trade_participant'
            )
