"""
Item Registry: owns item records, their images and their availability status.

The trade engine uses the core-facing methods (``lock``, ``find_available``,
``set_status``, ``is_owned_by``). Views use the owner-facing methods to
create, edit, re-status and delete items.
"""

import logging

from django.conf import settings
from django.db.models import Count, Max, Prefetch, Q
from rest_framework.exceptions import ValidationError

from .choices import (
    ENGINE_ITEM_TRANSITIONS,
    OWNER_ITEM_TRANSITIONS,
    ItemStatus,
    TradeRequestStatus,
)
from .exceptions import ForbiddenError, InvalidStateError, NotFoundError
from .models import Item, TradeRequest
from .store import TradeStore

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('title', 'description', 'category', 'condition', 'latitude', 'longitude')


class ItemRegistry:

    def __init__(self, store=None):
        self.store = store or TradeStore()

    @property
    def max_images(self):
        return getattr(settings, 'ITEM_MAX_IMAGES', 5)

    # ========================================================================
    # Core-facing operations
    # ========================================================================

    def lock(self, item_ids):
        """Lock item rows in primary-key order and return them keyed by id."""
        return self.store.lock_items(item_ids)

    def find_available(self, item_id, lock=False):
        """
        Return the item if it exists and is AVAILABLE, else None.
        """
        item = self.store.get_item(item_id, lock=lock)
        if item is None or item.status != ItemStatus.AVAILABLE:
            return None
        return item

    def is_owned_by(self, item, user_id):
        return item.owner_id == user_id

    def set_status(self, items, status):
        """
        Move locked items to ``status`` on behalf of the trade engine.

        Args:
            items: Item instances previously returned by ``lock()``
            status: Target ItemStatus

        Raises:
            InvalidStateError: If any item may not move to ``status``
        """
        for item in items:
            if status not in ENGINE_ITEM_TRANSITIONS[item.status]:
                raise InvalidStateError(
                    f'Item {item.pk} cannot move from {item.status} to {status}.',
                    code='invalid_item_transition'
                )

        self.store.set_item_status([item.pk for item in items], status)
        for item in items:
            item.status = status

    # ========================================================================
    # Owner-facing operations
    # ========================================================================

    def create_item(self, owner, data, images=()):
        """
        Create an item and its images in one transaction.

        Args:
            owner: User listing the item
            data: Validated item fields
            images: Uploaded image files, stored in the given order

        Returns:
            Item: The created item
        """
        images = list(images or [])
        self._check_image_count(len(images))

        fields = {name: data[name] for name in EDITABLE_FIELDS if name in data}

        with self.store.atomic():
            item = self.store.create_item(owner=owner, **fields)
            for order, image in enumerate(images):
                self.store.add_item_image(item, image, order)

        logger.info(
            f"Item created. Item ID: {item.pk}, Owner ID: {owner.pk}, "
            f"Images: {len(images)}"
        )
        return item

    def update_item(self, user_id, item_id, data, new_images=(), remove_image_ids=()):
        """
        Edit an item's fields and images.

        Removed images are deleted from storage once the transaction commits.
        New images are appended after the current highest order.

        Raises:
            NotFoundError: Item does not exist
            ForbiddenError: User does not own the item
            ValidationError: The item would end up with too many images
        """
        new_images = list(new_images or [])
        remove_image_ids = set(remove_image_ids or [])

        with self.store.atomic():
            item = self._get_owned_item(user_id, item_id, lock=True)

            for name in EDITABLE_FIELDS:
                if name in data:
                    setattr(item, name, data[name])
            item.save()

            removed = list(item.images.filter(pk__in=remove_image_ids))
            remaining = item.images.count() - len(removed)
            self._check_image_count(remaining + len(new_images))

            for image in removed:
                self._delete_image(image)

            next_order = item.images.aggregate(highest=Max('order'))['highest']
            next_order = 0 if next_order is None else next_order + 1
            for offset, image in enumerate(new_images):
                self.store.add_item_image(item, image, next_order + offset)

        logger.info(
            f"Item updated. Item ID: {item.pk}, User ID: {user_id}, "
            f"Added images: {len(new_images)}, Removed images: {len(removed)}"
        )
        return item

    def update_status(self, user_id, item_id, status):
        """
        Change an item's status at the owner's request.

        Items reserved by or swapped in a trade are controlled by the trade
        engine and cannot be re-statused by hand.

        Raises:
            NotFoundError: Item does not exist
            ForbiddenError: User does not own the item
            InvalidStateError: Item is engaged in a trade, or target is engine-only
        """
        with self.store.atomic():
            item = self._get_owned_item(user_id, item_id, lock=True)

            if status not in OWNER_ITEM_TRANSITIONS[item.status]:
                if not OWNER_ITEM_TRANSITIONS[item.status]:
                    raise InvalidStateError(
                        'Item is part of a trade and its status cannot be changed.',
                        code='item_in_trade'
                    )
                raise InvalidStateError(
                    f'Item status cannot be set to {status}.',
                    code='invalid_item_status'
                )

            old_status = item.status
            self.store.set_item_status([item.pk], status)
            item.status = status

        logger.info(
            f"Item status changed by owner. Item ID: {item.pk}, "
            f"{old_status} -> {status}, User ID: {user_id}"
        )
        return item

    def delete_item(self, user_id, item_id):
        """
        Delete an item and the records that reference it.

        Steps, in one transaction:
        1. Lock the item and check ownership
        2. Require status AVAILABLE and no PENDING request naming the item
           as requested or offered item
        3. Delete cancelled trades involving the item
        4. Delete the remaining (accepted or rejected) requests
        5. Delete images, then the item

        Raises:
            NotFoundError: Item does not exist
            ForbiddenError: User does not own the item
            InvalidStateError: Item is not AVAILABLE, has pending requests or
                belongs to a completed trade
        """
        with self.store.atomic():
            item = self._get_owned_item(user_id, item_id, lock=True)

            if item.status != ItemStatus.AVAILABLE:
                raise InvalidStateError(
                    'Only available items can be deleted.',
                    code='item_not_deletable'
                )

            if self.store.item_has_pending_requests(item.pk):
                raise InvalidStateError(
                    'Cannot delete an item with pending trade requests.',
                    code='item_has_pending_requests'
                )

            if self.store.item_has_active_trades(item.pk):
                raise InvalidStateError(
                    'Cannot delete an item that was part of a completed trade.',
                    code='item_not_deletable'
                )

            trades_deleted = self.store.delete_cancelled_trades(item.pk)
            requests_deleted = self.store.delete_trade_requests(item.pk)

            images = list(item.images.all())
            for image in images:
                self._delete_image(image)

            item.delete()

        logger.info(
            f"Item deleted. Item ID: {item_id}, User ID: {user_id}, "
            f"Cancelled trades removed: {trades_deleted}, "
            f"Requests removed: {requests_deleted}, Images removed: {len(images)}"
        )

    # ========================================================================
    # Queries
    # ========================================================================

    def get_item(self, item_id):
        """
        Return an item with its owner, images and pending offers.

        Raises:
            NotFoundError: Item does not exist
        """
        pending_offers = TradeRequest.objects.filter(
            status=TradeRequestStatus.PENDING
        ).select_related('requester', 'offered_item')

        item = (
            Item.objects
            .select_related('owner')
            .prefetch_related(
                'images',
                Prefetch('trade_requests_for', queryset=pending_offers, to_attr='pending_offers'),
            )
            .filter(pk=item_id)
            .first()
        )
        if item is None:
            raise NotFoundError('Item not found.', code='item_not_found')
        return item

    def list_items(self, filters=None):
        """
        Browse items.

        Supported filters:
        - status: defaults to AVAILABLE; pass 'ALL' for every status
        - category: case-insensitive exact match
        - condition
        - search: matched against title and description
        - exclude_user: hide items owned by this user id

        Returns:
            QuerySet: Items newest first, annotated with pending_request_count
        """
        filters = filters or {}
        queryset = Item.objects.select_related('owner').prefetch_related('images')

        status = filters.get('status') or ItemStatus.AVAILABLE
        if status != 'ALL':
            queryset = queryset.filter(status=status)

        if filters.get('category'):
            queryset = queryset.filter(category__iexact=filters['category'])

        if filters.get('condition'):
            queryset = queryset.filter(condition=filters['condition'])

        search = (filters.get('search') or '').strip()
        if search:
            queryset = queryset.filter(
                Q(title__icontains=search) | Q(description__icontains=search)
            )

        if filters.get('exclude_user'):
            queryset = queryset.exclude(owner_id=filters['exclude_user'])

        return queryset.annotate(
            pending_request_count=Count(
                'trade_requests_for',
                filter=Q(trade_requests_for__status=TradeRequestStatus.PENDING),
                distinct=True,
            )
        ).order_by('-posted_at', '-pk')

    def categories(self):
        """Distinct categories of available items, sorted."""
        return list(
            Item.objects
            .filter(status=ItemStatus.AVAILABLE)
            .order_by('category')
            .values_list('category', flat=True)
            .distinct()
        )

    def items_for_user(self, user_id, status=None):
        queryset = Item.objects.filter(owner_id=user_id).prefetch_related('images')
        if status:
            queryset = queryset.filter(status=status)
        return queryset.order_by('-posted_at', '-pk')

    # ========================================================================
    # Helpers
    # ========================================================================

    def _get_owned_item(self, user_id, item_id, lock=False):
        item = self.store.get_item(item_id, lock=lock)
        if item is None:
            raise NotFoundError('Item not found.', code='item_not_found')
        if not self.is_owned_by(item, user_id):
            logger.warning(
                f"User {user_id} attempted to modify item {item_id} owned by {item.owner_id}"
            )
            raise ForbiddenError('You can only modify your own items.', code='item_not_owned')
        return item

    def _check_image_count(self, count):
        if count > self.max_images:
            raise ValidationError({
                'images': [f'An item can have at most {self.max_images} images.']
            })

    def _delete_image(self, image):
        file_name = image.image.name
        storage = image.image.storage
        image.delete()
        if file_name:
            self.store.on_commit(lambda: storage.delete(file_name))
