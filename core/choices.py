"""
Closed status and choice sets for the swap marketplace.

Every status field in the data model draws its values from one of these
TextChoices classes. Transition tables built with ``transition_table()``
must name every member of their choices class, so adding a status without
deciding its transitions fails at import time instead of at runtime.
"""

from django.core.exceptions import ImproperlyConfigured
from django.db import models
from django.utils.translation import gettext_lazy as _


class ItemStatus(models.TextChoices):
    AVAILABLE = 'AVAILABLE', _('Available')
    RESERVED = 'RESERVED', _('Reserved')
    SWAPPED = 'SWAPPED', _('Swapped')
    UNAVAILABLE = 'UNAVAILABLE', _('Unavailable')
    TRADED = 'TRADED', _('Traded')
    REMOVED = 'REMOVED', _('Removed')


class ItemCondition(models.TextChoices):
    NEW = 'NEW', _('New')
    GOOD = 'GOOD', _('Good')
    FAIR = 'FAIR', _('Fair')
    POOR = 'POOR', _('Poor')


class TradeRequestStatus(models.TextChoices):
    PENDING = 'PENDING', _('Pending')
    ACCEPTED = 'ACCEPTED', _('Accepted')
    REJECTED = 'REJECTED', _('Rejected')


class TradeStatus(models.TextChoices):
    PENDING = 'PENDING', _('Pending')
    COMPLETED = 'COMPLETED', _('Completed')
    CANCELLED = 'CANCELLED', _('Cancelled')


class Badge(models.TextChoices):
    BRONZE = 'BRONZE', _('Bronze')
    SILVER = 'SILVER', _('Silver')
    GOLD = 'GOLD', _('Gold')
    DIAMOND = 'DIAMOND', _('Diamond')
    RUBY = 'RUBY', _('Ruby')


def transition_table(choices, table):
    """
    Validate that a transition table covers every member of ``choices``.

    Args:
        choices: TextChoices class the table is keyed by
        table: dict mapping each status to the statuses it may move to

    Returns:
        dict: The table itself, with targets normalised to frozensets

    Raises:
        ImproperlyConfigured: If a status is missing or a target is unknown
    """
    known = set(choices.values)
    missing = known - set(table)
    if missing:
        raise ImproperlyConfigured(
            f'{choices.__name__} transition table is missing {sorted(missing)}.'
        )

    for source, targets in table.items():
        unknown = set(targets) - known
        if source not in known or unknown:
            raise ImproperlyConfigured(
                f'{choices.__name__} transition table has unknown statuses: '
                f'{sorted(unknown | ({source} - known))}.'
            )

    return {source: frozenset(targets) for source, targets in table.items()}


# Transitions driven by the trade lifecycle engine.
TRADE_REQUEST_TRANSITIONS = transition_table(TradeRequestStatus, {
    TradeRequestStatus.PENDING: [TradeRequestStatus.ACCEPTED, TradeRequestStatus.REJECTED],
    TradeRequestStatus.ACCEPTED: [],
    TradeRequestStatus.REJECTED: [],
})

TRADE_TRANSITIONS = transition_table(TradeStatus, {
    TradeStatus.PENDING: [TradeStatus.COMPLETED, TradeStatus.CANCELLED],
    TradeStatus.COMPLETED: [],
    TradeStatus.CANCELLED: [],
})

# Item statuses the engine may set while a trade moves through its lifecycle.
ENGINE_ITEM_TRANSITIONS = transition_table(ItemStatus, {
    ItemStatus.AVAILABLE: [ItemStatus.RESERVED],
    ItemStatus.RESERVED: [ItemStatus.SWAPPED, ItemStatus.AVAILABLE],
    ItemStatus.SWAPPED: [],
    ItemStatus.UNAVAILABLE: [],
    ItemStatus.TRADED: [],
    ItemStatus.REMOVED: [],
})

_OWNER_STATUSES = [
    ItemStatus.AVAILABLE,
    ItemStatus.UNAVAILABLE,
    ItemStatus.TRADED,
    ItemStatus.REMOVED,
]

# Item statuses an owner may set by hand. Items engaged in a trade are locked.
OWNER_ITEM_TRANSITIONS = transition_table(ItemStatus, {
    ItemStatus.AVAILABLE: _OWNER_STATUSES,
    ItemStatus.RESERVED: [],
    ItemStatus.SWAPPED: [],
    ItemStatus.UNAVAILABLE: _OWNER_STATUSES,
    ItemStatus.TRADED: _OWNER_STATUSES,
    ItemStatus.REMOVED: _OWNER_STATUSES,
})
