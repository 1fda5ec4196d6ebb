"""
Error taxonomy for the trade lifecycle, rating ledger and item registry.

Core services raise these exceptions for every refused operation. They are
DRF ``APIException`` subclasses, so views can let them propagate and the
exception handler below turns them into responses with a stable ``code``.
"""

import logging

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class TradeError(APIException):
    """Base class for refused marketplace operations."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The operation could not be completed.'
    default_code = 'trade_error'

    def __init__(self, detail=None, code=None):
        super().__init__(detail, code)
        self.code = code or self.default_code


class NotFoundError(TradeError):
    """The referenced entity does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'
    default_code = 'not_found'


class ForbiddenError(TradeError):
    """The actor lacks rights over the entity."""

    status_code = status.HTTP_403_FORBIDDEN
    default_detail = 'You do not have permission to perform this action.'
    default_code = 'forbidden'


class InvalidStateError(TradeError):
    """The entity is not in the status the operation requires."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'The operation is not allowed in the current state.'
    default_code = 'invalid_state'


class ConflictError(InvalidStateError):
    """The operation would duplicate an existing record."""

    status_code = status.HTTP_409_CONFLICT
    default_detail = 'A conflicting record already exists.'
    default_code = 'conflict'


def api_exception_handler(exc, context):
    """
    DRF exception handler that exposes the error code of marketplace errors.

    Refused operations are logged at WARNING with the acting user and view.
    Anything DRF does not handle returns None and propagates as a 500.

    Args:
        exc: Raised exception
        context: DRF handler context (view, request, ...)

    Returns:
        Response or None
    """
    response = exception_handler(exc, context)

    if isinstance(exc, TradeError) and response is not None:
        request = context.get('request')
        view = context.get('view')
        user_id = getattr(getattr(request, 'user', None), 'id', None)
        logger.warning(
            f"Refused operation. "
            f"View: {view.__class__.__name__ if view else 'unknown'}, "
            f"User ID: {user_id}, "
            f"Code: {exc.code}, "
            f"Detail: {exc.detail}"
        )
        response.data['code'] = exc.code

    return response
