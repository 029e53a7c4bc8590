"""
datekey gateway: HTTP service releasing secret values behind a date-keyed
proof of possession.

Routes:
    GET  /health            liveness, never gated
    GET  /api/get-keys      disclosed keys (gated)
    POST /api/send-email    message dispatch (gated)
    POST /admin/disable     take the service offline (gated unless DATEKEY_ADMIN_OPEN)
    POST /admin/enable      bring it back
"""

from .main import create_app

__all__ = ["create_app"]
