"""
Route resolution for opened notifications.

When a user opens a notification the portal navigates to the page the
notification is about. The first matching rule wins:

1. related task    -> task detail (admin/worker), client dashboard, or home
2. related invoice -> client dashboard, accountant invoices, admin tasks, or home
3. low-stock type  -> admin inventory, or home
4. site id         -> admin site sections, accountant sites, or home
5. nothing matches -> no navigation
"""

from typing import Optional

from fieldlink.models import TYPE_LOW_STOCK, Notification
from fieldlink.session import ROLE_ACCOUNTANT, ROLE_ADMIN, ROLE_CLIENT, ROLE_WORKER

HOME = "/"
CLIENT_DASHBOARD = "/client/dashboard"


def _task_route(task_id: str, role: Optional[str]) -> str:
    if role == ROLE_ADMIN:
        return f"/admin/tasks/{task_id}"
    if role == ROLE_WORKER:
        return f"/worker/tasks/{task_id}"
    return CLIENT_DASHBOARD if role == ROLE_CLIENT else HOME


def _invoice_route(role: Optional[str]) -> str:
    # Admins have no invoice page, the task list is their closest view
    return {
        ROLE_CLIENT: CLIENT_DASHBOARD,
        ROLE_ACCOUNTANT: "/accountant/invoices",
        ROLE_ADMIN: "/admin/tasks",
    }.get(role, HOME)


def _site_route(site_id: str, role: Optional[str]) -> str:
    if role == ROLE_ADMIN:
        return f"/admin/sites/{site_id}/sections"
    if role == ROLE_ACCOUNTANT:
        return "/accountant/sites"
    return HOME


def resolve_route(notification: Notification, role: Optional[str]) -> Optional[str]:
    """
    Resolve where opening ``notification`` should navigate for ``role``.

    Args:
        notification: The opened notification
        role: Role of the current principal, or None when signed out

    Returns:
        Route path, or None when the notification carries no target
    """
    data = notification.data
    if data is None:
        return None

    if data.related_task:
        return _task_route(data.related_task, role)
    if data.related_invoice:
        return _invoice_route(role)
    if notification.type == TYPE_LOW_STOCK:
        return "/admin/inventory" if role == ROLE_ADMIN else HOME
    if data.site_id:
        return _site_route(data.site_id, role)
    return None
