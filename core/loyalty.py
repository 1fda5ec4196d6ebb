"""
Loyalty points and badge tiers.

A user's badge is a pure function of their loyalty points. Points are only
ever changed through ``award_loyalty_points()``, which increments the
counter and re-derives the badge inside one transaction.
"""

import logging

from django.conf import settings

from .choices import Badge

logger = logging.getLogger(__name__)

# Ascending, inclusive lower edges.
BADGE_THRESHOLDS = (
    (Badge.BRONZE, 0),
    (Badge.SILVER, 51),
    (Badge.GOLD, 151),
    (Badge.DIAMOND, 301),
    (Badge.RUBY, 601),
)

DEFAULT_RATING_REWARDS = {
    5: 10,
    4: 5,
    3: 2,
    2: 0,
    1: -5,
}


def calculate_badge(loyalty_points):
    """
    Derive the badge tier for a loyalty point total.

    Totals below zero (possible after 1-star penalties) stay at BRONZE.

    Args:
        loyalty_points: Signed point total

    Returns:
        Badge: Highest tier whose threshold the total reaches
    """
    badge = Badge.BRONZE
    for tier, threshold in BADGE_THRESHOLDS:
        if loyalty_points >= threshold:
            badge = tier
    return badge


def rating_reward(score):
    """
    Points granted to a reviewee for a rating of ``score`` stars.

    The table can be overridden with the LOYALTY_RATING_REWARDS setting.

    Raises:
        ValueError: If score has no entry in the reward table
    """
    rewards = getattr(settings, 'LOYALTY_RATING_REWARDS', DEFAULT_RATING_REWARDS)
    try:
        return rewards[score]
    except KeyError:
        raise ValueError(f'No loyalty reward defined for a {score}-star rating.')


def refresh_badge(user_id, store=None):
    """
    Recompute a user's badge from their current point total.

    Must run inside the caller's transaction; the user row is locked.

    Returns:
        User or None: The user, or None if the user no longer exists
    """
    from .store import TradeStore

    store = store or TradeStore()
    user = store.get_user(user_id, lock=True)
    if user is None:
        return None

    new_badge = calculate_badge(user.loyalty_points)
    if new_badge != user.badge:
        old_badge = user.badge
        store.set_badge(user, new_badge)
        logger.info(
            f"Badge changed for user {user_id}: {old_badge} -> {new_badge} "
            f"({user.loyalty_points} points)"
        )
    return user


def award_loyalty_points(user_id, points, reason, store=None):
    """
    Add (or with a negative value, remove) loyalty points and refresh the badge.

    The increment and the badge recomputation share one atomic block. If the
    recomputation fails the error is logged and re-raised so the increment
    is rolled back with it.

    Args:
        user_id: Primary key of the user receiving the points
        points: Signed number of points
        reason: Short description recorded in the log
        store: Optional TradeStore to use

    Returns:
        User or None: Updated user, or None if the user no longer exists
    """
    from .store import TradeStore

    store = store or TradeStore()

    with store.atomic():
        if not store.increment_loyalty_points(user_id, points):
            logger.warning(
                f"Skipped awarding {points} points to missing user {user_id} for: {reason}"
            )
            return None

        try:
            user = refresh_badge(user_id, store=store)
        except Exception as e:
            logger.error(
                f"Failed to recompute badge for user {user_id} after awarding "
                f"{points} points for {reason}: {e}",
                exc_info=True
            )
            raise

    logger.info(f"Awarded {points} points to user {user_id} for: {reason}")
    return user
