"""Audit trail for permission administration."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class PermissionAudit(Base):
    """
    Immutable record of one role/permission mutation.

    Written in the same transaction as the change it describes.
    """

    __tablename__ = "permission_audits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Who
    actor_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(50), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # What
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # create_role, grant, revoke_role, ...
    resource: Mapped[str] = mapped_column(String(100), nullable=False)  # "role:3", "user:42"
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<PermissionAudit {self.action} {self.resource}>"
