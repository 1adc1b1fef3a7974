from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, Integer, DateTime
from datetime import datetime
from typing import Optional


class Base(DeclarativeBase):
    pass


class Operator(Base):
    """Opérateur authentifié. login_epoch est posé par la couche d'authentification."""
    __tablename__ = "operators"

    id: Mapped[int] = mapped_column(primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True, nullable=False)
    # Secondes unix du login courant, NULL quand déconnecté
    login_epoch: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    selected_city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_logged_in(self) -> bool:
        return self.login_epoch is not None
