"""
TenantEndpoint SQLAlchemy model.

Per-tenant worker URL, kept in the database so every server instance sees
the same value.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from prompt_rater.infra.db.base import Base


class TenantEndpoint(Base):
    __tablename__ = "tenant_endpoints"

    tenant_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    worker_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
