"""
API views for the swap marketplace.

Views authenticate the caller, validate the payload with a serializer, call
one service operation and serialize the result. Refused operations raise
TradeError subclasses, which core.exceptions.api_exception_handler turns
into responses carrying a machine-readable ``code``.
"""

import logging

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from rest_framework import generics, status
from rest_framework.generics import ListAPIView
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.permissions import AllowAny, IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from . import profiles
from .item_registry import ItemRegistry
from .ledger import RatingLedger
from .pagination import MarketplacePagination
from .serializers import (
    CompletedTradeSerializer,
    EmailTokenObtainPairSerializer,
    ItemDetailSerializer,
    ItemFilterSerializer,
    ItemSerializer,
    ItemStatusSerializer,
    ItemWriteSerializer,
    PendingRatingSerializer,
    PublicProfileSerializer,
    RatingCreateSerializer,
    RatingSerializer,
    RatingUpdateSerializer,
    RequestStatusFilterSerializer,
    SentTradeRequestSerializer,
    TradeRequestCreateSerializer,
    TradeRequestSerializer,
    TradeSerializer,
    TradeStatusFilterSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    UserPublicSerializer,
    UserRegistrationSerializer,
)
from .trade_engine import TradeEngine

User = get_user_model()
logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


# ============================================================================
# Authentication
# ============================================================================

class EmailTokenObtainPairView(TokenObtainPairView):
    """
    Obtain an access/refresh token pair with email and password.
    """
    serializer_class = EmailTokenObtainPairSerializer


class UserRegistrationView(generics.CreateAPIView):
    """
    API endpoint for user registration.

    POST /api/auth/register/
    Request body: {
        "email": "user@example.com",
        "username": "swapper",
        "password": "...",
        "confirm_password": "...",
        "bio": "Optional"
    }

    Handles concurrent registration attempts with database-level uniqueness.
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            self.perform_create(serializer)
        except IntegrityError:
            # Concurrent registration with the same email or username
            logger.warning(
                f"Registration rejected by unique constraint. "
                f"Email: {serializer.validated_data.get('email')}, IP: {get_client_ip(request)}"
            )
            return Response(
                {'detail': 'A user with that email or username already exists.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        logger.info(
            f"User registered. User ID: {serializer.instance.pk}, IP: {get_client_ip(request)}"
        )
        headers = self.get_success_headers(serializer.data)
        return Response(serializer.data, status=status.HTTP_201_CREATED, headers=headers)


# ============================================================================
# Users
# ============================================================================

class UserProfileView(APIView):
    """
    Retrieve or update the authenticated user's profile.

    GET /api/users/me/
    PATCH /api/users/me/
    Body (multipart or JSON): {
        "bio": "...",
        "latitude": "52.520008",
        "longitude": "13.404954",
        "profile_image": <file>
    }

    Error responses:
    - 401: Missing, invalid, or expired JWT token
    - 400: Invalid data (validation errors)
    """
    permission_classes = [IsAuthenticated]
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def patch(self, request, *args, **kwargs):
        user = User.objects.get(pk=request.user.pk)
        serializer = UserProfileUpdateSerializer(
            user,
            data=request.data,
            partial=True,
            context={'request': request}
        )
        serializer.is_valid(raise_exception=True)
        serializer.save()

        logger.info(f"Profile updated. User ID: {user.pk}, Fields: {list(serializer.validated_data)}")

        response_serializer = UserProfileSerializer(user, context={'request': request})
        return Response(response_serializer.data, status=status.HTTP_200_OK)


class UserDetailView(APIView):
    """
    Public profile of a user with trading statistics.

    GET /api/users/<id>/
    """
    permission_classes = [AllowAny]

    def get(self, request, pk, *args, **kwargs):
        user = profiles.get_profile(pk)
        return Response(
            PublicProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class UserItemsView(ListAPIView):
    """
    Items listed by a user.

    GET /api/users/<id>/items/?status=AVAILABLE
    """
    permission_classes = [AllowAny]
    serializer_class = ItemSerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        profiles.get_profile(self.kwargs['pk'])
        return ItemRegistry().items_for_user(
            self.kwargs['pk'],
            status=self.request.query_params.get('status')
        )


class LeaderboardView(APIView):
    """
    Users with the most loyalty points.

    GET /api/users/leaderboard/?limit=10 (max 100)
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        try:
            limit = int(request.query_params.get('limit', 10))
        except ValueError:
            limit = 10
        limit = max(1, min(limit, 100))

        users = profiles.leaderboard(limit=limit)
        return Response(
            UserPublicSerializer(users, many=True, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class UserSearchView(APIView):
    """
    Search other users by username or email.

    GET /api/users/search/?q=alice
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        users = profiles.search_users(
            request.query_params.get('q'),
            exclude_user_id=request.user.pk
        )
        return Response(
            UserPublicSerializer(users, many=True, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


# ============================================================================
# Items
# ============================================================================

class ItemListCreateView(APIView):
    """
    Browse items or list a new one.

    GET /api/items/?category=books&condition=GOOD&search=lamp&status=AVAILABLE&exclude_mine=true
    Returns paginated items, newest first, with pending_request_count.

    POST /api/items/
    Headers: Authorization: Bearer <access_token>
    Body (multipart): title, description, category, condition,
        latitude, longitude (optional), images (up to 5 files)

    Error responses:
    - 401: Missing, invalid, or expired JWT token (POST)
    - 400: Invalid data (validation errors)
    """
    permission_classes = [IsAuthenticatedOrReadOnly]
    parser_classes = [MultiPartParser, FormParser, JSONParser]
    pagination_class = MarketplacePagination

    def get(self, request, *args, **kwargs):
        filters = ItemFilterSerializer(data=request.query_params)
        filters.is_valid(raise_exception=True)
        options = dict(filters.validated_data)

        if options.pop('exclude_mine', False) and request.user.is_authenticated:
            options['exclude_user'] = request.user.pk

        queryset = ItemRegistry().list_items(options)

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = ItemSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(serializer.data)

    def post(self, request, *args, **kwargs):
        serializer = ItemWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        images = data.pop('images', [])
        data.pop('remove_image_ids', None)

        item = ItemRegistry().create_item(request.user, data, images)

        logger.info(
            f"Item listed via API. Item ID: {item.pk}, User ID: {request.user.pk}, "
            f"IP: {get_client_ip(request)}"
        )
        return Response(
            ItemSerializer(item, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class ItemCategoriesView(APIView):
    """
    Distinct categories of available items.

    GET /api/items/categories/
    """
    permission_classes = [AllowAny]

    def get(self, request, *args, **kwargs):
        return Response(ItemRegistry().categories(), status=status.HTTP_200_OK)


class ItemDetailView(APIView):
    """
    Retrieve, edit or delete an item.

    GET /api/items/<id>/
    Item with owner, images and pending offers.

    PATCH /api/items/<id>/
    Body (multipart): any of title, description, category, condition,
        latitude, longitude, images (appended), remove_image_ids

    DELETE /api/items/<id>/
    Only AVAILABLE items without pending trade requests can be deleted.

    Error responses:
    - 403: Item belongs to another user
    - 404: Item not found
    - 400: Invalid data or item not deletable
    """
    permission_classes = [IsAuthenticatedOrReadOnly]
    parser_classes = [MultiPartParser, FormParser, JSONParser]

    def get(self, request, pk, *args, **kwargs):
        item = ItemRegistry().get_item(pk)
        return Response(
            ItemDetailSerializer(item, context={'request': request}).data,
            status=status.HTTP_200_OK
        )

    def patch(self, request, pk, *args, **kwargs):
        serializer = ItemWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        data = dict(serializer.validated_data)
        new_images = data.pop('images', [])
        remove_image_ids = data.pop('remove_image_ids', [])

        registry = ItemRegistry()
        registry.update_item(request.user.pk, pk, data, new_images, remove_image_ids)

        return Response(
            ItemDetailSerializer(registry.get_item(pk), context={'request': request}).data,
            status=status.HTTP_200_OK
        )

    def delete(self, request, pk, *args, **kwargs):
        ItemRegistry().delete_item(request.user.pk, pk)

        logger.info(
            f"Item deleted via API. Item ID: {pk}, User ID: {request.user.pk}, "
            f"IP: {get_client_ip(request)}"
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class ItemStatusView(APIView):
    """
    Change the status of one of your items.

    PUT /api/items/<id>/status/
    Request body: {"status": "UNAVAILABLE"}

    Owners may choose AVAILABLE, UNAVAILABLE, TRADED or REMOVED. Items
    reserved or swapped in a trade cannot be changed (400, code item_in_trade).
    """
    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        serializer = ItemStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        item = ItemRegistry().update_status(request.user.pk, pk, serializer.validated_data['status'])
        return Response(
            ItemSerializer(item, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


# ============================================================================
# Trade requests & trades
# ============================================================================

class TradeRequestCreateView(APIView):
    """
    Propose exchanging one of your items for another user's item.

    POST /api/trades/request/
    Request body: {
        "requested_item_id": 12,
        "offered_item_id": 7,
        "message": "Would you swap?"
    }

    Success response (201): the PENDING trade request.

    Error responses:
    - 400: Same item, item unavailable, own item requested (see ``code``)
    - 403: Offered item is not yours
    - 404: Requested or offered item not found
    - 409: You already have a pending request for this exchange
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = TradeRequestCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        trade_request = TradeEngine().create_trade_request(
            request.user.pk,
            data['requested_item_id'],
            data['offered_item_id'],
            data.get('message', ''),
        )

        logger.info(
            f"Trade request submitted. Request ID: {trade_request.pk}, "
            f"User ID: {request.user.pk}, IP: {get_client_ip(request)}"
        )
        return Response(
            TradeRequestSerializer(trade_request, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class TradeRequestAcceptView(APIView):
    """
    Accept a trade request for one of your items.

    POST /api/trades/accept/<id>/

    Success response (200): {
        "trade": {...},
        "trade_request": {...},
        "rejected_requests": 2
    }

    Both items become RESERVED and every other pending request involving
    either item is rejected.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        result = TradeEngine().accept_trade_request(request.user.pk, pk)

        logger.info(
            f"Trade request accepted via API. Request ID: {pk}, Trade ID: {result.trade.pk}, "
            f"User ID: {request.user.pk}, IP: {get_client_ip(request)}"
        )
        return Response(
            {
                'trade': TradeSerializer(result.trade, context={'request': request}).data,
                'trade_request': TradeRequestSerializer(
                    result.trade_request, context={'request': request}
                ).data,
                'rejected_requests': result.rejected_count,
            },
            status=status.HTTP_200_OK
        )


class TradeRequestRejectView(APIView):
    """
    Reject a trade request for one of your items.

    POST /api/trades/reject/<id>/
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        trade_request = TradeEngine().reject_trade_request(request.user.pk, pk)
        return Response(
            TradeRequestSerializer(trade_request, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class TradeCompleteView(APIView):
    """
    Mark a pending trade as completed. Either participant may complete it.

    POST /api/trades/complete/<id>/
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        trade = TradeEngine().complete_trade(request.user.pk, pk)

        logger.info(
            f"Trade completed via API. Trade ID: {pk}, User ID: {request.user.pk}, "
            f"IP: {get_client_ip(request)}"
        )
        return Response(
            TradeSerializer(trade, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class TradeCancelView(APIView):
    """
    Cancel a pending trade and release both items.

    POST /api/trades/cancel/<id>/

    Error responses use distinct codes for trades already completed
    (trade_already_completed) and already cancelled (trade_already_cancelled).
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        trade = TradeEngine().cancel_trade(request.user.pk, pk)
        return Response(
            TradeSerializer(trade, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class MyTradesView(ListAPIView):
    """
    Trades you take part in, newest first.

    GET /api/trades/my-trades/?status=PENDING
    """
    permission_classes = [IsAuthenticated]
    serializer_class = TradeSerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        filters = TradeStatusFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return TradeEngine().get_user_trades(
            self.request.user.pk, status=filters.validated_data.get('status')
        )


class ReceivedRequestsView(ListAPIView):
    """
    Trade requests made for your items.

    GET /api/trades/requests/received/?status=PENDING
    """
    permission_classes = [IsAuthenticated]
    serializer_class = TradeRequestSerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        filters = RequestStatusFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return TradeEngine().get_received_requests(
            self.request.user.pk, status=filters.validated_data.get('status')
        )


class SentRequestsView(ListAPIView):
    """
    Trade requests you made, with the trade each one led to.

    GET /api/trades/requests/sent/?status=ACCEPTED
    """
    permission_classes = [IsAuthenticated]
    serializer_class = SentTradeRequestSerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        filters = RequestStatusFilterSerializer(data=self.request.query_params)
        filters.is_valid(raise_exception=True)
        return TradeEngine().get_sent_requests(
            self.request.user.pk, status=filters.validated_data.get('status')
        )


class CompletedTradesView(ListAPIView):
    """
    Completed trades with their ratings.

    GET /api/trades/completed/            your completed trades
    GET /api/trades/completed/<user_id>/  another user's completed trades
    """
    permission_classes = [IsAuthenticated]
    serializer_class = CompletedTradeSerializer
    pagination_class = MarketplacePagination

    def get_queryset(self):
        user_id = self.kwargs.get('user_id', self.request.user.pk)
        return TradeEngine().get_completed_trades(user_id)


# ============================================================================
# Ratings
# ============================================================================

class RatingCreateView(APIView):
    """
    Rate the other participant of a completed trade.

    POST /api/ratings/
    Request body: {
        "reviewee_id": 2,
        "trade_id": 10,
        "score": 5,
        "comment": "Smooth swap!"
    }

    The reviewee's loyalty points and badge are updated in the same
    transaction.

    Error responses:
    - 400: Self-rating or trade not completed (see ``code``)
    - 403: You or the reviewee did not take part in the trade
    - 404: Trade not found
    - 409: You already rated this user for this trade
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = RatingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        rating = RatingLedger().create_rating(
            request.user.pk,
            data['reviewee_id'],
            data['trade_id'],
            data['score'],
            data.get('comment', ''),
        )

        logger.info(
            f"Rating submitted. Rating ID: {rating.pk}, User ID: {request.user.pk}, "
            f"IP: {get_client_ip(request)}"
        )
        return Response(
            RatingSerializer(rating, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class RatingDetailView(APIView):
    """
    Update or delete one of your ratings.

    PATCH /api/ratings/<id>/
    Request body: {"score": 4, "comment": "Updated"}  (either field optional)

    DELETE /api/ratings/<id>/
    The loyalty points the rating granted are taken back.
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk, *args, **kwargs):
        serializer = RatingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        rating = RatingLedger().update_rating(
            request.user.pk, pk,
            score=data.get('score'),
            comment=data.get('comment'),
        )
        return Response(
            RatingSerializer(rating, context={'request': request}).data,
            status=status.HTTP_200_OK
        )

    def delete(self, request, pk, *args, **kwargs):
        RatingLedger().delete_rating(request.user.pk, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class PendingRatingsView(APIView):
    """
    Completed trades you have not rated yet, with the user to rate.

    GET /api/ratings/pending/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        pending = RatingLedger().get_pending_ratings(request.user.pk)
        return Response(
            PendingRatingSerializer(pending, many=True, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


class UserRatingsView(APIView):
    """
    Ratings a user received or gave.

    GET /api/ratings/user/<id>/?type=received|given

    Success response (200): {
        "average": 4.5,
        "total": 2,
        "results": [...]
    }
    """
    permission_classes = [AllowAny]
    pagination_class = MarketplacePagination

    def get(self, request, pk, *args, **kwargs):
        result = RatingLedger().get_user_ratings(pk, request.query_params.get('type', 'received'))

        paginator = self.pagination_class()
        page = paginator.paginate_queryset(result['ratings'], request, view=self)
        response = paginator.get_paginated_response(
            RatingSerializer(page, many=True, context={'request': request}).data
        )
        response.data['average'] = result['average']
        response.data['total'] = result['total']
        return response


class UserRatingStatsView(APIView):
    """
    Rating statistics for a user.

    GET /api/ratings/user/<id>/stats/
    """
    permission_classes = [AllowAny]

    def get(self, request, pk, *args, **kwargs):
        return Response(RatingLedger().get_user_rating_stats(pk), status=status.HTTP_200_OK)
