"""
URL configuration for authentication.

URL Structure:
    /token/          POST  - Obtain access/refresh JWT pair (email + password)
    /token/refresh/  POST  - Rotate refresh token

All URLs are prefixed with /api/v1/auth/ in the main URL configuration.
"""

from django.urls import path
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

app_name = "authentication"

urlpatterns = [
    path("token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
]
