"""
Public user profiles, the loyalty leaderboard and user search.
"""

from django.contrib.auth import get_user_model
from django.db.models import Avg, Count, Q

from .choices import ItemStatus, TradeStatus
from .exceptions import NotFoundError
from .models import Rating, Trade

User = get_user_model()


def get_profile(user_id):
    """
    Load a user together with their public statistics.

    Adds to the returned user:
    - available_item_count
    - completed_trade_count
    - average_rating (received, rounded to one decimal, or None)
    - rating_count

    Raises:
        NotFoundError: If the user does not exist
    """
    user = (
        User.objects
        .annotate(
            available_item_count=Count(
                'items',
                filter=Q(items__status=ItemStatus.AVAILABLE),
                distinct=True,
            ),
        )
        .filter(pk=user_id, is_active=True)
        .first()
    )
    if user is None:
        raise NotFoundError('User not found.', code='user_not_found')

    user.completed_trade_count = Trade.objects.filter(
        Q(owner_id=user_id) | Q(requester_id=user_id),
        status=TradeStatus.COMPLETED,
    ).count()

    summary = Rating.objects.filter(reviewee_id=user_id).aggregate(
        average=Avg('score'), total=Count('id')
    )
    user.average_rating = round(summary['average'], 1) if summary['average'] is not None else None
    user.rating_count = summary['total']
    return user


def leaderboard(limit=10):
    """Active users with the most loyalty points, ties broken by username."""
    return User.objects.filter(is_active=True).order_by('-loyalty_points', 'username')[:limit]


def search_users(query, exclude_user_id=None, limit=20):
    """
    Find active users whose username or email contains ``query``.

    Returns an empty queryset for a blank query.
    """
    query = (query or '').strip()
    if not query:
        return User.objects.none()

    queryset = User.objects.filter(
        Q(username__icontains=query) | Q(email__icontains=query),
        is_active=True,
    )
    if exclude_user_id is not None:
        queryset = queryset.exclude(pk=exclude_user_id)
    return queryset.order_by('username')[:limit]
