"""
Serializers for authentication, profiles, items, trades and ratings.

Serializers only validate payloads and shape responses. Every state change
goes through the services in item_registry, trade_engine and ledger.
"""

from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .choices import ItemCondition, ItemStatus, TradeRequestStatus, TradeStatus
from .models import Item, ItemImage, Rating, Trade, TradeRequest
from .validators import validate_image_file, validate_latitude, validate_longitude

User = get_user_model()


def build_file_url(serializer, file_field):
    """
    Absolute URL for a stored file when the request is in context.

    Returns:
        str or None: None if no file is attached
    """
    if not file_field:
        return None
    request = serializer.context.get('request')
    if request is not None:
        return request.build_absolute_uri(file_field.url)
    return file_field.url


def validate_image_list(images):
    """
    Validate a list of uploaded item images.

    Validates:
    - At most ITEM_MAX_IMAGES images
    - Each image passes validate_image_file (format, content type, size)

    Raises:
        ValidationError: naming the first offending image
    """
    max_images = getattr(settings, 'ITEM_MAX_IMAGES', 5)
    if len(images) > max_images:
        raise serializers.ValidationError(
            f"Maximum {max_images} images allowed per item."
        )

    for i, image in enumerate(images):
        try:
            validate_image_file(image)
        except DjangoValidationError as e:
            raise serializers.ValidationError(f"Image {i + 1}: {' '.join(e.messages)}")

    return images


# ============================================================================
# Authentication & Users
# ============================================================================

class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    """
    Token serializer for email login that also embeds username and badge claims.
    """
    username_field = 'email'

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['badge'] = user.badge
        return token


class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for user registration with comprehensive validation.

    Fields:
    - email: Required, unique (case-insensitive)
    - username: Required, unique, 3-30 characters
    - password: Required, must pass Django's password validators
    - confirm_password: Required, must match password
    - bio: Optional
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'username', 'password', 'confirm_password', 'bio',
                  'loyalty_points', 'badge', 'created_at']
        read_only_fields = ['id', 'loyalty_points', 'badge', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
            'username': {'required': True, 'min_length': 3, 'max_length': 30},
        }

    def validate_email(self, value):
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that email already exists."
            )

        return value

    def validate_username(self, value):
        value = value.strip()

        if User.objects.filter(username__iexact=value).exists():
            raise serializers.ValidationError(
                "A user with that username already exists."
            )

        return value

    def validate_password(self, value):
        """
        Validate password strength using Django's password validators.
        """
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))

        return value

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })

        return attrs

    def create(self, validated_data):
        validated_data.pop('confirm_password', None)
        password = validated_data.pop('password')

        return User.objects.create_user(password=password, **validated_data)


class UserPublicSerializer(serializers.ModelSerializer):
    """
    Minimal public view of a user, used wherever another user is shown.
    """

    profile_image_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'username', 'badge', 'loyalty_points', 'profile_image_url']
        read_only_fields = fields

    def get_profile_image_url(self, obj):
        return build_file_url(self, obj.profile_image)


class UserProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for the authenticated user's own profile.

    Excludes sensitive fields (password, is_staff, is_superuser, etc.).
    """

    profile_image_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'username',
            'bio',
            'latitude',
            'longitude',
            'loyalty_points',
            'badge',
            'profile_image_url',
            'created_at'
        ]
        read_only_fields = fields

    def get_profile_image_url(self, obj):
        return build_file_url(self, obj.profile_image)


class PublicProfileSerializer(UserPublicSerializer):
    """
    Public profile with trading statistics.

    Expects a user loaded through core.profiles.get_profile().
    """

    available_item_count = serializers.IntegerField(read_only=True)
    completed_trade_count = serializers.IntegerField(read_only=True)
    average_rating = serializers.FloatField(read_only=True, allow_null=True)
    rating_count = serializers.IntegerField(read_only=True)

    class Meta(UserPublicSerializer.Meta):
        fields = UserPublicSerializer.Meta.fields + [
            'bio',
            'available_item_count',
            'completed_trade_count',
            'average_rating',
            'rating_count',
            'created_at',
        ]
        read_only_fields = fields


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Serializer for profile updates (PATCH).

    Only bio, location and profile image can be changed. Loyalty points,
    badge, email and permissions are never writable here.
    """

    class Meta:
        model = User
        fields = ['bio', 'latitude', 'longitude', 'profile_image']
        extra_kwargs = {
            'bio': {'required': False},
            'latitude': {'required': False, 'validators': [validate_latitude]},
            'longitude': {'required': False, 'validators': [validate_longitude]},
            'profile_image': {'required': False, 'validators': [validate_image_file]},
        }

    def update(self, instance, validated_data):
        """
        Update only the submitted fields.

        Saving with update_fields keeps loyalty_points untouched, since the
        ledger changes that column directly in the database.
        """
        old_image = instance.profile_image if 'profile_image' in validated_data else None

        fields_to_update = []
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
            fields_to_update.append(attr)

        if fields_to_update:
            instance.save(update_fields=fields_to_update + ['updated_at'])

        if old_image and old_image.name != getattr(instance.profile_image, 'name', None):
            old_image.storage.delete(old_image.name)

        return instance


# ============================================================================
# Items
# ============================================================================

class ItemImageSerializer(serializers.ModelSerializer):
    """
    Item image with its absolute URL and display order.
    """

    image = serializers.SerializerMethodField()

    class Meta:
        model = ItemImage
        fields = ['id', 'image', 'order', 'uploaded_at']
        read_only_fields = fields

    def get_image(self, obj):
        return build_file_url(self, obj.image)


class ItemSerializer(serializers.ModelSerializer):
    """
    Item as shown in listings and after create/update.

    pending_request_count is present when the queryset was annotated by
    ItemRegistry.list_items().
    """

    owner = UserPublicSerializer(read_only=True)
    images = ItemImageSerializer(many=True, read_only=True)
    pending_request_count = serializers.IntegerField(read_only=True, required=False)

    class Meta:
        model = Item
        fields = [
            'id',
            'owner',
            'title',
            'description',
            'category',
            'condition',
            'status',
            'latitude',
            'longitude',
            'images',
            'pending_request_count',
            'posted_at',
            'updated_at',
        ]
        read_only_fields = fields


class ItemSummarySerializer(serializers.ModelSerializer):
    """Compact item representation nested in trades and requests."""

    class Meta:
        model = Item
        fields = ['id', 'title', 'category', 'condition', 'status', 'owner_id']
        read_only_fields = fields


class PendingOfferSerializer(serializers.ModelSerializer):
    requester = UserPublicSerializer(read_only=True)
    offered_item = ItemSummarySerializer(read_only=True)

    class Meta:
        model = TradeRequest
        fields = ['id', 'requester', 'offered_item', 'message', 'requested_at']
        read_only_fields = fields


class ItemDetailSerializer(ItemSerializer):
    """
    Item detail including the pending offers made for it.

    Expects an item loaded through ItemRegistry.get_item().
    """

    pending_offers = PendingOfferSerializer(many=True, read_only=True)

    class Meta(ItemSerializer.Meta):
        fields = ItemSerializer.Meta.fields + ['pending_offers']
        read_only_fields = fields


class ItemWriteSerializer(serializers.Serializer):
    """
    Payload for creating (all fields required) or editing (partial) an item.

    Fields:
    - title: 3-100 characters
    - description: 10-1000 characters
    - category: 2-50 characters
    - condition: NEW, GOOD, FAIR or POOR
    - latitude / longitude: optional
    - images: up to ITEM_MAX_IMAGES files (JPEG, PNG, WebP, max 5MB each)
    - remove_image_ids: ids of existing images to delete (edit only)
    """

    title = serializers.CharField(min_length=3, max_length=100)
    description = serializers.CharField(min_length=10, max_length=1000)
    category = serializers.CharField(min_length=2, max_length=50)
    condition = serializers.ChoiceField(choices=ItemCondition.choices)
    latitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, required=False, allow_null=True,
        validators=[validate_latitude]
    )
    longitude = serializers.DecimalField(
        max_digits=9, decimal_places=6, required=False, allow_null=True,
        validators=[validate_longitude]
    )
    images = serializers.ListField(
        child=serializers.ImageField(),
        required=False,
        default=list,
        write_only=True,
    )
    remove_image_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        required=False,
        default=list,
        write_only=True,
    )

    def validate_images(self, value):
        return validate_image_list(value)


class ItemStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ItemStatus.choices)


class ItemFilterSerializer(serializers.Serializer):
    """Query parameters accepted by the item listing."""

    category = serializers.CharField(required=False, max_length=50)
    condition = serializers.ChoiceField(choices=ItemCondition.choices, required=False)
    status = serializers.ChoiceField(
        choices=list(ItemStatus.values) + ['ALL'], required=False
    )
    search = serializers.CharField(required=False, max_length=100)
    exclude_mine = serializers.BooleanField(required=False, default=False)


# ============================================================================
# Trades
# ============================================================================

class TradeRequestCreateSerializer(serializers.Serializer):
    """
    Payload for proposing a trade.

    Ownership, availability and duplicate checks happen in the trade engine.
    """

    requested_item_id = serializers.IntegerField(min_value=1)
    offered_item_id = serializers.IntegerField(min_value=1)
    message = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')


class TradeSerializer(serializers.ModelSerializer):
    owner = UserPublicSerializer(read_only=True)
    requester = UserPublicSerializer(read_only=True)
    requested_item = ItemSummarySerializer(read_only=True)
    offered_item = ItemSummarySerializer(read_only=True)

    class Meta:
        model = Trade
        fields = [
            'id',
            'trade_request_id',
            'owner',
            'requester',
            'requested_item',
            'offered_item',
            'status',
            'created_at',
            'completed_at',
            'cancelled_at',
        ]
        read_only_fields = fields


class TradeRequestSerializer(serializers.ModelSerializer):
    requester = UserPublicSerializer(read_only=True)
    requested_item = ItemSummarySerializer(read_only=True)
    offered_item = ItemSummarySerializer(read_only=True)

    class Meta:
        model = TradeRequest
        fields = [
            'id',
            'requester',
            'requested_item',
            'offered_item',
            'message',
            'status',
            'requested_at',
            'responded_at',
        ]
        read_only_fields = fields


class SentTradeRequestSerializer(TradeRequestSerializer):
    """Sent request together with the trade it led to, if accepted."""

    trade = serializers.SerializerMethodField()

    class Meta(TradeRequestSerializer.Meta):
        fields = TradeRequestSerializer.Meta.fields + ['trade']
        read_only_fields = fields

    def get_trade(self, obj):
        try:
            trade = obj.trade
        except Trade.DoesNotExist:
            return None
        return {
            'id': trade.pk,
            'status': trade.status,
            'created_at': serializers.DateTimeField().to_representation(trade.created_at),
        }


class RequestStatusFilterSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=TradeRequestStatus.choices, required=False)


class TradeStatusFilterSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=TradeStatus.choices, required=False)


# ============================================================================
# Ratings
# ============================================================================

class RatingSerializer(serializers.ModelSerializer):
    reviewer = UserPublicSerializer(read_only=True)
    reviewee = UserPublicSerializer(read_only=True)

    class Meta:
        model = Rating
        fields = [
            'id',
            'reviewer',
            'reviewee',
            'trade_id',
            'score',
            'comment',
            'points_awarded',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields


class CompletedTradeSerializer(TradeSerializer):
    ratings = RatingSerializer(many=True, read_only=True)

    class Meta(TradeSerializer.Meta):
        fields = TradeSerializer.Meta.fields + ['ratings']
        read_only_fields = fields


class RatingCreateSerializer(serializers.Serializer):
    """
    Payload for rating the other party of a completed trade.

    Fields:
    - reviewee_id: User being rated
    - trade_id: Completed trade both users took part in
    - score: Integer 1-5
    - comment: Optional, max 500 characters
    """

    reviewee_id = serializers.IntegerField(min_value=1)
    trade_id = serializers.IntegerField(min_value=1)
    score = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')

    def validate_comment(self, value):
        return value.strip()


class RatingUpdateSerializer(serializers.Serializer):
    score = serializers.IntegerField(min_value=1, max_value=5, required=False)
    comment = serializers.CharField(max_length=500, required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError(
                "Provide a score or a comment to update."
            )
        if 'comment' in attrs:
            attrs['comment'] = attrs['comment'].strip()
        return attrs


class PendingRatingSerializer(serializers.Serializer):
    trade = TradeSerializer(read_only=True)
    user_to_rate = UserPublicSerializer(read_only=True)
