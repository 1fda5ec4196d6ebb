"""
URL configuration for the swap_marketplace project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenBlacklistView,
    TokenRefreshView,
    TokenVerifyView,
)

from core.views import (
    CompletedTradesView,
    EmailTokenObtainPairView,
    ItemCategoriesView,
    ItemDetailView,
    ItemListCreateView,
    ItemStatusView,
    LeaderboardView,
    MyTradesView,
    PendingRatingsView,
    RatingCreateView,
    RatingDetailView,
    ReceivedRequestsView,
    SentRequestsView,
    TradeCancelView,
    TradeCompleteView,
    TradeRequestAcceptView,
    TradeRequestCreateView,
    TradeRequestRejectView,
    UserDetailView,
    UserItemsView,
    UserProfileView,
    UserRatingStatsView,
    UserRatingsView,
    UserRegistrationView,
    UserSearchView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/logout/', TokenBlacklistView.as_view(), name='user_logout'),

    # JWT Authentication endpoints
    path('api/token/', EmailTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/token/verify/', TokenVerifyView.as_view(), name='token_verify'),

    # User endpoints
    path('api/users/me/', UserProfileView.as_view(), name='user_profile'),
    path('api/users/leaderboard/', LeaderboardView.as_view(), name='user_leaderboard'),
    path('api/users/search/', UserSearchView.as_view(), name='user_search'),
    path('api/users/<int:pk>/', UserDetailView.as_view(), name='user_detail'),
    path('api/users/<int:pk>/items/', UserItemsView.as_view(), name='user_items'),

    # Item endpoints
    path('api/items/', ItemListCreateView.as_view(), name='item_list'),
    path('api/items/categories/', ItemCategoriesView.as_view(), name='item_categories'),
    path('api/items/<int:pk>/', ItemDetailView.as_view(), name='item_detail'),
    path('api/items/<int:pk>/status/', ItemStatusView.as_view(), name='item_status'),

    # Trade endpoints
    path('api/trades/request/', TradeRequestCreateView.as_view(), name='trade_request_create'),
    path('api/trades/accept/<int:pk>/', TradeRequestAcceptView.as_view(), name='trade_request_accept'),
    path('api/trades/reject/<int:pk>/', TradeRequestRejectView.as_view(), name='trade_request_reject'),
    path('api/trades/complete/<int:pk>/', TradeCompleteView.as_view(), name='trade_complete'),
    path('api/trades/cancel/<int:pk>/', TradeCancelView.as_view(), name='trade_cancel'),
    path('api/trades/my-trades/', MyTradesView.as_view(), name='my_trades'),
    path('api/trades/requests/received/', ReceivedRequestsView.as_view(), name='received_requests'),
    path('api/trades/requests/sent/', SentRequestsView.as_view(), name='sent_requests'),
    path('api/trades/completed/', CompletedTradesView.as_view(), name='completed_trades'),
    path('api/trades/completed/<int:user_id>/', CompletedTradesView.as_view(), name='user_completed_trades'),

    # Rating endpoints
    path('api/ratings/', RatingCreateView.as_view(), name='rating_create'),
    path('api/ratings/pending/', PendingRatingsView.as_view(), name='pending_ratings'),
    path('api/ratings/<int:pk>/', RatingDetailView.as_view(), name='rating_detail'),
    path('api/ratings/user/<int:pk>/', UserRatingsView.as_view(), name='user_ratings'),
    path('api/ratings/user/<int:pk>/stats/', UserRatingStatsView.as_view(), name='user_rating_stats'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
