"""
Wire models for portal notifications.

Pydantic models for the notification payloads delivered by both the REST
endpoint and the Socket.IO push channel. The server is a MongoDB-backed API,
so identifiers arrive as ``_id``; push payloads carry ``title`` where REST
payloads carry ``subject``. Both spellings are accepted.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# ============================================================================
# Constants
# ============================================================================

TYPE_INVOICE_GENERATED = "invoice-generated"
TYPE_TASK_ASSIGNED = "task-assigned"
TYPE_TASK_COMPLETED = "task-completed"
TYPE_LOW_STOCK = "low-stock"

KNOWN_TYPES = frozenset([
    TYPE_INVOICE_GENERATED,
    TYPE_TASK_ASSIGNED,
    TYPE_TASK_COMPLETED,
    TYPE_LOW_STOCK,
])


def _coerce_id(value: Any) -> Any:
    # ObjectIds sometimes arrive as {"$oid": "..."} or plain ints in fixtures
    if isinstance(value, dict) and "$oid" in value:
        return str(value["$oid"])
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


# ============================================================================
# NotificationData
# ============================================================================


class NotificationData(BaseModel):
    """Entity references attached to a notification, used for routing."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    related_task: Optional[str] = Field(
        None, alias="relatedTask", description="Task the notification is about"
    )
    related_invoice: Optional[str] = Field(
        None, alias="relatedInvoice", description="Invoice the notification is about"
    )
    site_id: Optional[str] = Field(
        None, alias="siteId", description="Site the notification is about"
    )

    @field_validator("related_task", "related_invoice", "site_id", mode="before")
    @classmethod
    def ids_as_strings(cls, v: Any) -> Any:
        # Populated references come back as embedded documents
        if isinstance(v, dict) and "_id" in v:
            v = v["_id"]
        return _coerce_id(v)


# ============================================================================
# Notification
# ============================================================================


class Notification(BaseModel):
    """
    A single notification addressed to the current principal.

    Identity is ``id``. The ``read`` flag is carried for display only:
    the server deletes a notification when it is opened, so every
    notification the client holds is effectively unread.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: str = Field(..., validation_alias=AliasChoices("_id", "id"))
    subject: str = Field("", validation_alias=AliasChoices("subject", "title"))
    message: str = ""
    type: str = ""
    read: bool = False
    created_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at")
    )
    data: Optional[NotificationData] = None

    @field_validator("id", mode="before")
    @classmethod
    def id_as_string(cls, v: Any) -> Any:
        return _coerce_id(v)

    @field_validator("subject", "message", "type", mode="before")
    @classmethod
    def none_as_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def is_known_type(self) -> bool:
        return self.type in KNOWN_TYPES
