"""
Catalogue des villes routables et préférences par opérateur.
"""
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, UniqueConstraint
from datetime import datetime
from typing import Optional

from adaptive_scraper.models.operator import Base


class ProxyCity(Base):
    __tablename__ = "available_proxy_cities"

    id: Mapped[int] = mapped_column(primary_key=True)
    city_key: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)  # e.g. "new_york"
    display_name: Mapped[str] = mapped_column(String(150), nullable=False)
    country_code: Mapped[str] = mapped_column(String(2), default="US", nullable=False)


class CityProxyPreference(Base):
    __tablename__ = "operator_proxy_cities"
    __table_args__ = (
        UniqueConstraint("operator_id", "city_key", name="uq_operator_city"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    operator_id: Mapped[int] = mapped_column(Integer, ForeignKey("operators.id"), nullable=False, index=True)
    city_key: Mapped[str] = mapped_column(String(100), nullable=False)
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    usage_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
