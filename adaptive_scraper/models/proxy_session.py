"""
ProxySession - IP de sortie épinglée pour un opérateur pendant un login epoch.
"""
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from typing import Optional

from adaptive_scraper.models.operator import Base


class ProxySession(Base):
    __tablename__ = "proxy_sessions"
    __table_args__ = (
        UniqueConstraint("operator_id", "login_epoch", name="uq_proxy_session_operator_epoch"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    operator_id: Mapped[int] = mapped_column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    login_epoch: Mapped[int] = mapped_column(Integer, nullable=False)
    assigned_ip: Mapped[str] = mapped_column(String(64), nullable=False)
    upstream_username: Mapped[str] = mapped_column(String(255), nullable=False)
    city_key: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "operator_id": self.operator_id,
            "login_epoch": self.login_epoch,
            "assigned_ip": self.assigned_ip,
            "upstream_username": self.upstream_username,
            "city_key": self.city_key,
            "assigned_at": self.assigned_at.isoformat() if self.assigned_at else None,
        }
