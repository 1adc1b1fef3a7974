from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from adaptive_scraper.models.operator import Operator
from adaptive_scraper.models.proxy_session import ProxySession


class ProxySessionRepository:
    """
    Repository des sessions proxy épinglées.
    Clé logique: (operator_id, login_epoch).
    """

    def __init__(self, session: Session):
        self.session = session

    def get_operator(self, operator_id: int) -> Optional[Operator]:
        return self.session.get(Operator, operator_id)

    def get_login_epoch(self, operator_id: int) -> Optional[int]:
        operator = self.get_operator(operator_id)
        return operator.login_epoch if operator else None

    def set_login_epoch(self, operator_id: int, epoch: Optional[int]) -> bool:
        operator = self.get_operator(operator_id)
        if operator is None:
            return False
        operator.login_epoch = epoch
        self.session.flush()
        return True

    def get(self, operator_id: int, login_epoch: int) -> Optional[ProxySession]:
        return self.session.query(ProxySession).filter(
            ProxySession.operator_id == operator_id,
            ProxySession.login_epoch == login_epoch,
        ).first()

    def get_latest(self, operator_id: int) -> Optional[ProxySession]:
        return self.session.query(ProxySession).filter(
            ProxySession.operator_id == operator_id,
        ).order_by(ProxySession.assigned_at.desc()).first()

    def create(
        self,
        operator_id: int,
        login_epoch: int,
        assigned_ip: str,
        upstream_username: str,
        city_key: Optional[str] = None,
    ) -> ProxySession:
        """
        Insère la session de l'epoch si elle n'existe pas encore.

        Une session déjà présente (autre worker plus rapide) n'est jamais
        écrasée: c'est elle qui est retournée.

        Returns: La session persistée, éventuellement celle d'un autre worker
        """
        existing = self.get(operator_id, login_epoch)
        if existing:
            return existing

        proxy_session = ProxySession(
            operator_id=operator_id,
            login_epoch=login_epoch,
            assigned_ip=assigned_ip,
            upstream_username=upstream_username,
            city_key=city_key,
            assigned_at=datetime.utcnow(),
        )
        self.session.add(proxy_session)
        try:
            self.session.flush()
        except IntegrityError:
            self.session.rollback()
            winner = self.get(operator_id, login_epoch)
            if winner is None:
                raise
            return winner
        return proxy_session

    def delete_for_operator(self, operator_id: int) -> int:
        """Supprime toutes les sessions de l'opérateur. Retourne le nombre supprimé."""
        count = self.session.query(ProxySession).filter(
            ProxySession.operator_id == operator_id,
        ).delete(synchronize_session=False)
        self.session.flush()
        return count

    def delete_older_than(self, max_age_hours: int) -> int:
        cutoff = datetime.utcnow() - timedelta(hours=max_age_hours)
        count = self.session.query(ProxySession).filter(
            ProxySession.assigned_at < cutoff,
        ).delete(synchronize_session=False)
        self.session.flush()
        return count
