"""
Persistence collaborator for the marketplace services.

``TradeStore`` wraps every ORM read and write the trade engine, item
registry and rating ledger perform. Services receive a store at
construction time, so tests can substitute one that fails on purpose and
check that a transaction rolls back as a whole.

Methods taking ``lock=True`` issue ``SELECT ... FOR UPDATE`` and must be
called inside ``atomic()``.
"""

from django.db import transaction
from django.db.models import F, Q
from django.utils import timezone

from .choices import TradeRequestStatus, TradeStatus
from .models import (
    Item,
    ItemImage,
    Rating,
    SwappedItem,
    Trade,
    TradeRequest,
    User,
)


class TradeStore:
    """Transactional access to users, items, trade requests, trades and ratings."""

    def atomic(self):
        return transaction.atomic()

    def on_commit(self, func):
        transaction.on_commit(func)

    # ========================================================================
    # Users
    # ========================================================================

    def get_user(self, user_id, lock=False):
        queryset = User.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        return queryset.filter(pk=user_id).first()

    def increment_loyalty_points(self, user_id, delta):
        """
        Add ``delta`` to a user's points in the database.

        Returns:
            int: Number of rows updated (0 if the user does not exist)
        """
        return User.objects.filter(pk=user_id).update(
            loyalty_points=F('loyalty_points') + delta
        )

    def set_badge(self, user, badge):
        User.objects.filter(pk=user.pk).update(badge=badge)
        user.badge = badge

    # ========================================================================
    # Items
    # ========================================================================

    def get_item(self, item_id, lock=False):
        queryset = Item.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        return queryset.filter(pk=item_id).first()

    def lock_items(self, item_ids):
        """
        Lock item rows in ascending primary-key order.

        Returns:
            dict: item id -> Item for the ids that exist
        """
        ids = sorted(set(i for i in item_ids if i is not None))
        items = Item.objects.select_for_update().filter(pk__in=ids).order_by('pk')
        return {item.pk: item for item in items}

    def set_item_status(self, item_ids, status):
        return Item.objects.filter(pk__in=list(item_ids)).update(
            status=status, updated_at=timezone.now()
        )

    def item_has_pending_requests(self, item_id):
        return TradeRequest.objects.filter(
            Q(requested_item_id=item_id) | Q(offered_item_id=item_id),
            status=TradeRequestStatus.PENDING,
        ).exists()

    def item_has_active_trades(self, item_id):
        """True if a trade other than a cancelled one involves the item."""
        return Trade.objects.filter(
            Q(requested_item_id=item_id) | Q(offered_item_id=item_id)
        ).exclude(status=TradeStatus.CANCELLED).exists()

    def delete_cancelled_trades(self, item_id):
        deleted, _ = Trade.objects.filter(
            Q(requested_item_id=item_id) | Q(offered_item_id=item_id),
            status=TradeStatus.CANCELLED,
        ).delete()
        return deleted

    def delete_trade_requests(self, item_id):
        deleted, _ = TradeRequest.objects.filter(
            Q(requested_item_id=item_id) | Q(offered_item_id=item_id)
        ).exclude(status=TradeRequestStatus.PENDING).delete()
        return deleted

    def create_item(self, **fields):
        return Item.objects.create(**fields)

    def add_item_image(self, item, image, order):
        return ItemImage.objects.create(item=item, image=image, order=order)

    # ========================================================================
    # Trade requests
    # ========================================================================

    def get_trade_request(self, request_id, lock=False):
        queryset = TradeRequest.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        return queryset.filter(pk=request_id).first()

    def find_pending_request(self, requester_id, requested_item_id, offered_item_id):
        return TradeRequest.objects.filter(
            requester_id=requester_id,
            requested_item_id=requested_item_id,
            offered_item_id=offered_item_id,
            status=TradeRequestStatus.PENDING,
        ).first()

    def create_trade_request(self, requester_id, requested_item_id, offered_item_id, message=''):
        return TradeRequest.objects.create(
            requester_id=requester_id,
            requested_item_id=requested_item_id,
            offered_item_id=offered_item_id,
            message=message or '',
            status=TradeRequestStatus.PENDING,
        )

    def set_trade_request_status(self, trade_request, status):
        trade_request.status = status
        trade_request.responded_at = timezone.now()
        trade_request.save(update_fields=['status', 'responded_at', 'updated_at'])
        return trade_request

    def reject_competing_requests(self, exclude_id, item_ids):
        """
        Reject every other PENDING request that involves any of ``item_ids``.

        Returns:
            int: Number of requests rejected
        """
        item_ids = list(item_ids)
        now = timezone.now()
        return TradeRequest.objects.filter(
            Q(requested_item_id__in=item_ids) | Q(offered_item_id__in=item_ids),
            status=TradeRequestStatus.PENDING,
        ).exclude(pk=exclude_id).update(
            status=TradeRequestStatus.REJECTED,
            responded_at=now,
            updated_at=now,
        )

    # ========================================================================
    # Trades
    # ========================================================================

    def create_trade(self, trade_request, owner_id):
        return Trade.objects.create(
            trade_request=trade_request,
            owner_id=owner_id,
            requester_id=trade_request.requester_id,
            requested_item_id=trade_request.requested_item_id,
            offered_item_id=trade_request.offered_item_id,
            status=TradeStatus.PENDING,
        )

    def get_trade(self, trade_id, lock=False):
        queryset = Trade.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        return queryset.filter(pk=trade_id).first()

    def set_trade_status(self, trade, status):
        now = timezone.now()
        trade.status = status
        update_fields = ['status', 'updated_at']
        if status == TradeStatus.COMPLETED:
            trade.completed_at = now
            update_fields.append('completed_at')
        elif status == TradeStatus.CANCELLED:
            trade.cancelled_at = now
            update_fields.append('cancelled_at')
        trade.save(update_fields=update_fields)
        return trade

    def create_swapped_items(self, trade):
        """Record who acquired which item: each party receives the other's item."""
        return SwappedItem.objects.bulk_create([
            SwappedItem(trade=trade, item_id=trade.requested_item_id, user_id=trade.requester_id),
            SwappedItem(trade=trade, item_id=trade.offered_item_id, user_id=trade.owner_id),
        ])

    # ========================================================================
    # Ratings
    # ========================================================================

    def find_rating(self, reviewer_id, reviewee_id, trade_id):
        return Rating.objects.filter(
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            trade_id=trade_id,
        ).first()

    def create_rating(self, reviewer_id, reviewee_id, trade, score, comment=''):
        rating = Rating(
            reviewer_id=reviewer_id,
            reviewee_id=reviewee_id,
            trade=trade,
            score=score,
            comment=comment or '',
        )
        rating._loyalty_store = self
        rating.save(force_insert=True)
        return rating

    def get_rating(self, rating_id, lock=False):
        queryset = Rating.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        return queryset.filter(pk=rating_id).first()

    def save_rating(self, rating, update_fields):
        rating._loyalty_store = self
        rating.save(update_fields=list(update_fields) + ['updated_at'])
        return rating

    def delete_rating(self, rating):
        rating._loyalty_store = self
        rating.delete()
