"""
FieldLink - Real-time notification and payment-alert client.

This package provides the client-side core of the FieldLink field-services
portal. It keeps a live, capped view of the signed-in user's notifications
by merging a pulled REST snapshot with events pushed over Socket.IO, and
classifies site payment dates into overdue / due-soon / current alerts.

Key modules:
- session: Current principal and login/logout notifications
- api_client: HTTP client for the portal REST API
- push_channel: Socket.IO connection scoped to one principal
- notifications: Notification reconciliation engine
- routing: Route resolution for opened notifications
- scope: Connection scope created on login and disposed on logout
- payments: Payment cycle alert evaluator
- config: Client configuration management
"""

import os
from importlib import metadata


def _get_version() -> str:
    """
    Get version with priority: FIELDLINK_VERSION env var > installed metadata > fallback.

    Priority:
    1. FIELDLINK_VERSION env var - explicit runtime override
    2. Distribution metadata - set when installed with pip
    3. Fallback - unknown version
    """
    env_version = os.environ.get('FIELDLINK_VERSION')
    if env_version:
        return env_version

    try:
        return metadata.version('fieldlink')
    except metadata.PackageNotFoundError:
        pass

    return '0.0.0+unknown'


__version__ = _get_version()
