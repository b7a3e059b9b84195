"""
API routers
"""

from taxhub.api import customers, invitations, permissions, tenants

__all__ = [
    "customers",
    "invitations",
    "permissions",
    "tenants",
]
