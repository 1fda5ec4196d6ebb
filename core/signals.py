"""
Django signals that keep loyalty points in step with ratings.

Every rating stores the points it currently grants its reviewee in
``points_awarded``. When a rating is saved, the difference between the
reward for its score and what it granted before is applied to the
reviewee; when it is deleted, what it granted is taken back.

These receivers run inside the transaction of the rating write. If the
point update fails, the error is logged and re-raised so the rating
write is rolled back with it.

A rating written through a TradeStore carries it as ``_loyalty_store``;
the point update then goes through the same store.
"""

import logging

from django.db.models.signals import post_delete, post_save, pre_save
from django.dispatch import receiver

from .loyalty import award_loyalty_points, rating_reward
from .models import Rating

logger = logging.getLogger(__name__)


@receiver(pre_save, sender=Rating)
def compute_rating_points(sender, instance, raw=False, update_fields=None, **kwargs):
    """
    Work out the point delta a rating save will cause.

    Stores the delta on the instance for ``apply_rating_points`` and sets
    ``points_awarded`` to the reward for the new score. Saves that do not
    touch ``score`` cause no delta.
    """
    instance._loyalty_delta = 0

    if raw:
        return

    if update_fields is not None and 'score' not in update_fields:
        return

    previous = 0
    if instance.pk is not None:
        stored = Rating.objects.filter(pk=instance.pk).values_list('points_awarded', flat=True).first()
        previous = stored or 0

    reward = rating_reward(instance.score)
    instance._loyalty_delta = reward - previous
    instance.points_awarded = reward


@receiver(post_save, sender=Rating)
def apply_rating_points(sender, instance, created, raw=False, **kwargs):
    """
    Apply the point delta worked out in ``compute_rating_points``.

    Args:
        sender: The Rating model class
        instance: The Rating instance that was saved
        created: Boolean indicating if this is a new rating
        **kwargs: Additional keyword arguments
    """
    delta = getattr(instance, '_loyalty_delta', 0)
    instance._loyalty_delta = 0

    if raw or not delta:
        return

    action = "created" if created else "updated"
    try:
        award_loyalty_points(
            instance.reviewee_id,
            delta,
            reason=f"rating {instance.pk} {action} ({instance.score} stars)",
            store=getattr(instance, '_loyalty_store', None),
        )
    except Exception as e:
        logger.error(
            f"Error applying loyalty points for rating {instance.pk} ({action}): {e}",
            exc_info=True
        )
        raise


@receiver(post_delete, sender=Rating)
def reverse_rating_points(sender, instance, **kwargs):
    """
    Take back the points a deleted rating had granted.

    Args:
        sender: The Rating model class
        instance: The Rating instance that was deleted
        **kwargs: Additional keyword arguments
    """
    if not instance.points_awarded:
        return

    try:
        award_loyalty_points(
            instance.reviewee_id,
            -instance.points_awarded,
            reason=f"rating {instance.pk} deleted",
            store=getattr(instance, '_loyalty_store', None),
        )
    except Exception as e:
        logger.error(
            f"Error reversing loyalty points for deleted rating {instance.pk}: {e}",
            exc_info=True
        )
        raise
