"""
Django admin configuration for the swap marketplace.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Item, ItemImage, Rating, SwappedItem, Trade, TradeRequest, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Custom admin interface for User model.

    Loyalty points and badge are read-only: they only change through ratings.
    """

    list_display = [
        'email',
        'username',
        'loyalty_points',
        'badge',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'badge',
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = [
        'email',
        'username',
        'first_name',
        'last_name',
    ]

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Personal Info'), {
            'fields': (
                'first_name',
                'last_name',
                'email',
                'bio',
                'profile_image',
                'latitude',
                'longitude',
            )
        }),
        (_('Loyalty'), {
            'fields': ('loyalty_points', 'badge')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': (
                'username',
                'email',
                'password1',
                'password2',
            ),
        }),
    )

    readonly_fields = ['loyalty_points', 'badge', 'created_at', 'updated_at', 'last_login', 'date_joined']

    date_hierarchy = 'created_at'

    list_per_page = 25


# ============================================================================
# Items
# ============================================================================

class ItemImageInline(admin.TabularInline):
    """Inline admin for item images."""
    model = ItemImage
    extra = 1
    fields = ['image', 'order', 'uploaded_at']
    readonly_fields = ['uploaded_at']
    ordering = ['order']


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):

    list_display = [
        'title',
        'owner',
        'category',
        'condition',
        'status',
        'posted_at',
    ]

    list_filter = [
        'status',
        'condition',
        'category',
        'posted_at',
    ]

    search_fields = [
        'title',
        'description',
        'owner__email',
        'owner__username',
    ]

    # Status belongs to the owner API and the trade engine.
    readonly_fields = ['status', 'posted_at', 'updated_at']

    ordering = ['-posted_at']

    date_hierarchy = 'posted_at'

    list_per_page = 25

    inlines = [ItemImageInline]

    fieldsets = (
        (None, {
            'fields': ('owner', 'title', 'description')
        }),
        (_('Details'), {
            'fields': ('category', 'condition', 'status', 'latitude', 'longitude')
        }),
        (_('Timestamps'), {
            'fields': ('posted_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


# ============================================================================
# Trades
# ============================================================================

@admin.register(TradeRequest)
class TradeRequestAdmin(admin.ModelAdmin):

    list_display = [
        'id',
        'requester',
        'requested_item',
        'offered_item',
        'status',
        'requested_at',
        'responded_at',
    ]

    list_filter = [
        'status',
        'requested_at',
    ]

    search_fields = [
        'requester__email',
        'requester__username',
        'requested_item__title',
        'offered_item__title',
    ]

    readonly_fields = ['status', 'requested_at', 'responded_at', 'updated_at']

    ordering = ['-requested_at']

    list_per_page = 25


class SwappedItemInline(admin.TabularInline):
    model = SwappedItem
    extra = 0
    can_delete = False
    fields = ['item', 'user', 'created_at']
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Trade)
class TradeAdmin(admin.ModelAdmin):

    list_display = [
        'id',
        'owner',
        'requester',
        'requested_item',
        'offered_item',
        'status',
        'created_at',
        'completed_at',
    ]

    list_filter = [
        'status',
        'created_at',
        'completed_at',
    ]

    search_fields = [
        'owner__email',
        'requester__email',
        'requested_item__title',
        'offered_item__title',
    ]

    readonly_fields = ['status', 'created_at', 'updated_at', 'completed_at', 'cancelled_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    inlines = [SwappedItemInline]


@admin.register(SwappedItem)
class SwappedItemAdmin(admin.ModelAdmin):
    """Swapped items are an append-only record and cannot be edited here."""

    list_display = ['trade', 'item', 'user', 'created_at']

    search_fields = ['item__title', 'user__email']

    ordering = ['-created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ============================================================================
# Ratings
# ============================================================================

@admin.register(Rating)
class RatingAdmin(admin.ModelAdmin):

    list_display = [
        'id',
        'reviewer',
        'reviewee',
        'trade',
        'score',
        'points_awarded',
        'created_at',
    ]

    list_filter = [
        'score',
        'created_at',
    ]

    search_fields = [
        'reviewer__email',
        'reviewer__username',
        'reviewee__email',
        'reviewee__username',
        'comment',
    ]

    readonly_fields = ['points_awarded', 'created_at', 'updated_at']

    ordering = ['-created_at']

    date_hierarchy = 'created_at'

    list_per_page = 25

    fieldsets = (
        (None, {
            'fields': ('reviewer', 'reviewee', 'trade')
        }),
        (_('Rating Content'), {
            'fields': ('score', 'comment', 'points_awarded')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )
