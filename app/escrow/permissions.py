"""
Permission classes for the escrow API.

Administrator status always comes from the authenticated user record,
never from anything the client sends. Party checks (buyer/seller) live
in the services because they depend on the order being acted on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


class IsEscrowAdmin(permissions.BasePermission):
    """Allows access only to authenticated staff users."""

    message = "Escrow administrator access required."

    def has_permission(self, request: Request, view: APIView) -> bool:
        user = request.user
        return bool(user and user.is_authenticated and user.is_escrow_admin)
