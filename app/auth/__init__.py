"""Caller identity and report authorization."""

from .authorization import CurrentUser, ReportAuthorizer, SuperAdminAuthorizer, ensure_authorized, get_current_user

__all__ = ["CurrentUser", "ReportAuthorizer", "SuperAdminAuthorizer", "ensure_authorized", "get_current_user"]
