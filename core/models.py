"""
Data model for the swap marketplace.

Users list items, propose item-for-item trade requests, turn accepted
requests into trades, and rate each other once a trade is completed.
"""

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import (
    MaxLengthValidator,
    MaxValueValidator,
    MinLengthValidator,
    MinValueValidator,
)
from django.db import models
from django.utils.translation import gettext_lazy as _

from .choices import (
    TRADE_REQUEST_TRANSITIONS,
    TRADE_TRANSITIONS,
    Badge,
    ItemCondition,
    ItemStatus,
    TradeRequestStatus,
    TradeStatus,
)
from .loyalty import calculate_badge
from .validators import (
    validate_image_file,
    validate_latitude,
    validate_longitude,
    validate_not_blank,
)


def user_profile_image_upload_path(instance, filename):
    """
    Generate upload path for user profile images.

    Path format: profile_images/{user_id}/{filename}
    If user_id is not yet available (user not saved), uses 'temp' as placeholder.
    """
    user_id = instance.id if instance.id else 'temp'
    return f'profile_images/{user_id}/{filename}'


def item_image_upload_path(instance, filename):
    """
    Generate upload path for item images.

    Path format: items/{item_id}/{filename}
    """
    item_id = instance.item_id if instance.item_id else 'temp'
    return f'items/{item_id}/{filename}'


class User(AbstractUser):
    """
    Marketplace user. Logs in with email.

    Additional fields:
    - email: Required, unique, stored lower-cased
    - bio: Optional free text
    - profile_image: Optional picture
    - latitude / longitude: Optional location
    - loyalty_points: Signed point total earned from received ratings
    - badge: Tier derived from loyalty_points, never set independently
    """

    email = models.EmailField(
        _('email address'),
        unique=True,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
        help_text=_('Required. Used to log in.')
    )

    bio = models.TextField(
        _('bio'),
        blank=True,
        default='',
        validators=[MaxLengthValidator(500)],
    )

    profile_image = models.ImageField(
        _('profile image'),
        upload_to=user_profile_image_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_file],
    )

    latitude = models.DecimalField(
        _('latitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[validate_latitude],
    )

    longitude = models.DecimalField(
        _('longitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[validate_longitude],
    )

    loyalty_points = models.IntegerField(
        _('loyalty points'),
        default=0,
        help_text=_('Points earned from ratings received. May be negative.')
    )

    badge = models.CharField(
        _('badge'),
        max_length=10,
        choices=Badge.choices,
        default=Badge.BRONZE,
        help_text=_('Derived from loyalty points.')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = ['username']

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['loyalty_points'], name='core_user_loyalty_8f2c1e_idx'),
            models.Index(fields=['badge'], name='core_user_badge_4b7d0a_idx'),
        ]

    def __str__(self):
        return self.email or self.username

    def save(self, *args, **kwargs):
        """Normalise email and keep the badge in line with loyalty_points."""
        if self.email:
            self.email = self.email.lower()

        self.badge = calculate_badge(self.loyalty_points)

        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'loyalty_points' in update_fields:
            kwargs['update_fields'] = set(update_fields) | {'badge'}

        super().save(*args, **kwargs)


class Item(models.Model):
    """
    An item listed by its owner and available for swapping.

    Status is changed by the owner (AVAILABLE, UNAVAILABLE, TRADED, REMOVED)
    or by the trade lifecycle engine (RESERVED, SWAPPED and back to AVAILABLE).
    """

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='items',
        help_text=_('User who listed the item')
    )

    title = models.CharField(
        _('title'),
        max_length=100,
        validators=[MinLengthValidator(3), validate_not_blank],
    )

    description = models.TextField(
        _('description'),
        validators=[MinLengthValidator(10), MaxLengthValidator(1000), validate_not_blank],
    )

    category = models.CharField(
        _('category'),
        max_length=50,
        validators=[MinLengthValidator(2), validate_not_blank],
    )

    condition = models.CharField(
        _('condition'),
        max_length=10,
        choices=ItemCondition.choices,
    )

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=ItemStatus.choices,
        default=ItemStatus.AVAILABLE,
    )

    latitude = models.DecimalField(
        _('latitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[validate_latitude],
    )

    longitude = models.DecimalField(
        _('longitude'),
        max_digits=9,
        decimal_places=6,
        null=True,
        blank=True,
        validators=[validate_longitude],
    )

    posted_at = models.DateTimeField(_('posted at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('item')
        verbose_name_plural = _('items')
        ordering = ['-posted_at']
        indexes = [
            models.Index(fields=['owner'], name='core_item_owner_i_3a9e51_idx'),
            models.Index(fields=['status'], name='core_item_status_7c0f2b_idx'),
            models.Index(fields=['category'], name='core_item_categor_d51a8e_idx'),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        super().clean()
        self.title = self.title.strip() if self.title else self.title
        self.category = self.category.strip() if self.category else self.category
        self.description = self.description.strip() if self.description else self.description

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_available(self):
        return self.status == ItemStatus.AVAILABLE

    def is_owned_by(self, user_id):
        return self.owner_id == user_id


class ItemImage(models.Model):
    """Image attached to an item, displayed by ``order``."""

    item = models.ForeignKey(
        Item,
        on_delete=models.CASCADE,
        related_name='images',
    )

    image = models.ImageField(
        _('image'),
        upload_to=item_image_upload_path,
        validators=[validate_image_file],
    )

    order = models.PositiveIntegerField(_('order'), default=0)

    uploaded_at = models.DateTimeField(_('uploaded at'), auto_now_add=True)

    class Meta:
        verbose_name = _('item image')
        verbose_name_plural = _('item images')
        ordering = ['order', 'uploaded_at']
        indexes = [
            models.Index(fields=['item', 'order'], name='core_itemim_item_id_0e6b4f_idx'),
        ]

    def __str__(self):
        return f"Image {self.order} for item {self.item_id}"


class TradeRequest(models.Model):
    """
    A proposal to exchange the requester's offered item for someone else's item.

    Only the owner of the requested item may accept or reject it. Once it
    leaves PENDING it never changes again.
    """

    VALID_TRANSITIONS = TRADE_REQUEST_TRANSITIONS

    requester = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sent_trade_requests',
    )

    requested_item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='trade_requests_for',
    )

    offered_item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='trade_requests_offered',
    )

    message = models.TextField(
        _('message'),
        blank=True,
        default='',
        validators=[MaxLengthValidator(500)],
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=TradeRequestStatus.choices,
        default=TradeRequestStatus.PENDING,
    )

    requested_at = models.DateTimeField(_('requested at'), auto_now_add=True)
    responded_at = models.DateTimeField(_('responded at'), null=True, blank=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('trade request')
        verbose_name_plural = _('trade requests')
        ordering = ['-requested_at']
        indexes = [
            models.Index(fields=['requester', 'status'], name='core_trader_request_5f1c2d_idx'),
            models.Index(fields=['requested_item', 'status'], name='core_trader_request_9b3e7a_idx'),
            models.Index(fields=['offered_item', 'status'], name='core_trader_offered_2d8c4e_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(requested_item=models.F('offered_item')),
                name='trade_request_items_differ',
            ),
            models.UniqueConstraint(
                fields=['requester', 'requested_item', 'offered_item'],
                condition=models.Q(status='PENDING'),
                name='unique_pending_trade_request',
            ),
        ]

    def __str__(self):
        return f"Trade request {self.pk}: item {self.offered_item_id} for item {self.requested_item_id}"

    def clean(self):
        """
        Validate the participants and items of the request.

        Ensures:
        - Requested and offered items differ
        - Offered item belongs to the requester
        - Requested item does not belong to the requester
        """
        super().clean()

        if self.requested_item_id and self.requested_item_id == self.offered_item_id:
            raise ValidationError({
                'offered_item': _('Cannot trade the same item.')
            })

        if self.offered_item_id and self.requester_id:
            if self.offered_item.owner_id != self.requester_id:
                raise ValidationError({
                    'offered_item': _('You can only offer your own items.')
                })

        if self.requested_item_id and self.requester_id:
            if self.requested_item.owner_id == self.requester_id:
                raise ValidationError({
                    'requested_item': _('Cannot request your own item.')
                })

    def can_transition_to(self, new_status):
        return new_status in self.VALID_TRANSITIONS[self.status]


class Trade(models.Model):
    """
    The binding exchange created when a trade request is accepted.

    owner is the owner of the requested item; requester made the request.
    """

    VALID_TRANSITIONS = TRADE_TRANSITIONS

    trade_request = models.OneToOneField(
        TradeRequest,
        on_delete=models.PROTECT,
        related_name='trade',
    )

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='trades_as_owner',
    )

    requester = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='trades_as_requester',
    )

    requested_item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='trades_as_requested',
    )

    offered_item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='trades_as_offered',
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=TradeStatus.choices,
        default=TradeStatus.PENDING,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)
    completed_at = models.DateTimeField(_('completed at'), null=True, blank=True)
    cancelled_at = models.DateTimeField(_('cancelled at'), null=True, blank=True)

    class Meta:
        verbose_name = _('trade')
        verbose_name_plural = _('trades')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['owner', 'status'], name='core_trade_owner_i_6a2f9c_idx'),
            models.Index(fields=['requester', 'status'], name='core_trade_request_1e7b3d_idx'),
            models.Index(fields=['completed_at'], name='core_trade_complet_8d4a0f_idx'),
        ]

    def __str__(self):
        return f"Trade {self.pk} ({self.status})"

    def can_transition_to(self, new_status):
        return new_status in self.VALID_TRANSITIONS[self.status]

    def is_participant(self, user_id):
        return user_id in (self.owner_id, self.requester_id)

    def other_party_id(self, user_id):
        """
        Return the id of the participant who is not ``user_id``.

        Returns:
            int or None: None if user_id did not take part in the trade
        """
        if user_id == self.owner_id:
            return self.requester_id
        if user_id == self.requester_id:
            return self.owner_id
        return None


class SwappedItem(models.Model):
    """
    Append-only record of which user acquired which item in a completed trade.
    """

    trade = models.ForeignKey(
        Trade,
        on_delete=models.PROTECT,
        related_name='swapped_items',
    )

    item = models.ForeignKey(
        Item,
        on_delete=models.PROTECT,
        related_name='swaps',
    )

    user = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='acquired_items',
        help_text=_('User who received the item')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('swapped item')
        verbose_name_plural = _('swapped items')
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['trade', 'item'],
                name='unique_swapped_item_per_trade',
            ),
        ]

    def __str__(self):
        return f"Item {self.item_id} -> user {self.user_id} (trade {self.trade_id})"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(_('Swapped item records cannot be modified.'))
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError(_('Swapped item records cannot be deleted.'))


class Rating(models.Model):
    """
    Rating given by one trade participant to the other after completion.

    points_awarded holds the loyalty points this rating currently grants the
    reviewee, so updates and deletions adjust exactly what was granted.
    """

    reviewer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='ratings_given',
    )

    reviewee = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='ratings_received',
    )

    trade = models.ForeignKey(
        Trade,
        on_delete=models.PROTECT,
        related_name='ratings',
    )

    score = models.PositiveSmallIntegerField(
        _('score'),
        validators=[
            MinValueValidator(1, message=_('Rating must be at least 1 star.')),
            MaxValueValidator(5, message=_('Rating cannot exceed 5 stars.'))
        ],
    )

    comment = models.TextField(
        _('comment'),
        blank=True,
        default='',
        validators=[MaxLengthValidator(500)],
    )

    points_awarded = models.IntegerField(
        _('points awarded'),
        default=0,
        editable=False,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('rating')
        verbose_name_plural = _('ratings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['reviewee'], name='core_rating_reviewe_3c5e8b_idx'),
            models.Index(fields=['reviewer'], name='core_rating_reviewe_7f1a2d_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['reviewer', 'reviewee', 'trade'],
                name='unique_rating_per_trade_pair',
            ),
            models.CheckConstraint(
                condition=~models.Q(reviewer=models.F('reviewee')),
                name='rating_reviewer_not_reviewee',
            ),
        ]

    def __str__(self):
        return f"Rating by {self.reviewer_id} for {self.reviewee_id} - {self.score}★"

    def save(self, *args, **kwargs):
        # points_awarded follows score, see core.signals
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'score' in update_fields:
            kwargs['update_fields'] = set(update_fields) | {'points_awarded'}
        super().save(*args, **kwargs)

    def clean(self):
        """
        Validate the rating against its trade.

        Ensures:
        - Reviewer and reviewee are different users
        - Trade is completed
        - Reviewer took part in the trade and reviewee is the other party
        """
        super().clean()

        if self.reviewer_id and self.reviewer_id == self.reviewee_id:
            raise ValidationError({
                'reviewee': _('Reviewer and reviewee cannot be the same user.')
            })

        if self.trade_id:
            if self.trade.status != TradeStatus.COMPLETED:
                raise ValidationError({
                    'trade': _('Only completed trades can be rated.')
                })

            if self.reviewer_id and not self.trade.is_participant(self.reviewer_id):
                raise ValidationError({
                    'reviewer': _('Reviewer must be a participant of the trade.')
                })

            if self.reviewer_id and self.reviewee_id:
                if self.trade.other_party_id(self.reviewer_id) != self.reviewee_id:
                    raise ValidationError({
                        'reviewee': _('Reviewee must be the other party of the trade.')
                    })
