"""HTTP backend for artifact approvals.

Public API: create_app, create_app_from_env
Internal: auth, models, routes
"""

from scriptapproval.server.app import create_app, create_app_from_env

__all__ = ["create_app", "create_app_from_env"]
