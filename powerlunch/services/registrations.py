"""Read access to conference-scoped registrations and groups.

Writes that change a registration's matching state only happen inside
``RegistrationStore.transaction()``, which the commit engine uses so that
group creation and status transitions land together or not at all.
"""

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from powerlunch.models import LunchGroup, Registration, new_document_id, utcnow
from powerlunch.schemas import RegistrationCreate
from powerlunch.services.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class RegistrationStore:
    def __init__(self, session_factory: sessionmaker | None):
        self._session_factory = session_factory

    def _open(self) -> Session:
        if self._session_factory is None:
            raise StoreUnavailable("Registration store is not configured")
        return self._session_factory()

    @contextmanager
    def _reading(self) -> Iterator[Session]:
        session = self._open()
        try:
            yield session
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Registration store read failed: {exc}") from exc
        finally:
            session.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session whose work commits on clean exit and rolls back on any error."""
        session = self._open()
        try:
            with session.begin():
                yield session
        finally:
            session.close()

    def new_group_id(self) -> str:
        return new_document_id()

    def fetch_pending(self, conference_id: str, lunch_date: str) -> list[Registration]:
        with self._reading() as session:
            rows = (
                session.query(Registration)
                .filter(
                    Registration.conference_id == conference_id,
                    Registration.lunch_date == lunch_date,
                    Registration.status == "pending",
                )
                .all()
            )
        logger.debug("Fetched %d pending registrations for %s on %s", len(rows), conference_id, lunch_date)
        return rows

    def fetch_by_ids(self, conference_id: str, ids: list[str]) -> list[Registration]:
        """Best-effort lookup; ids with no document are dropped, input order is kept."""
        if not ids:
            return []
        with self._reading() as session:
            rows = (
                session.query(Registration)
                .filter(Registration.conference_id == conference_id, Registration.id.in_(ids))
                .all()
            )
        by_id = {row.id: row for row in rows}
        return [by_id[i] for i in dict.fromkeys(ids) if i in by_id]

    def fetch_active(self, conference_id: str) -> list[Registration]:
        with self._reading() as session:
            return (
                session.query(Registration)
                .filter(
                    Registration.conference_id == conference_id,
                    Registration.status.in_(["pending", "matched"]),
                )
                .order_by(Registration.created_at.asc())
                .all()
            )

    def get_group(self, conference_id: str, group_id: str) -> LunchGroup | None:
        with self._reading() as session:
            return (
                session.query(LunchGroup)
                .filter(LunchGroup.conference_id == conference_id, LunchGroup.id == group_id)
                .first()
            )

    def get_group_with_members(
        self, conference_id: str, group_id: str
    ) -> tuple[LunchGroup, list[Registration]] | None:
        group = self.get_group(conference_id, group_id)
        if group is None:
            return None
        return group, self.fetch_by_ids(conference_id, list(group.member_ids or []))

    def list_groups(self, conference_id: str, lunch_date: str | None = None) -> list[LunchGroup]:
        with self._reading() as session:
            query = session.query(LunchGroup).filter(LunchGroup.conference_id == conference_id)
            if lunch_date:
                query = query.filter(LunchGroup.lunch_date == lunch_date)
            return query.order_by(LunchGroup.created_at.asc()).all()

    def create_registration(self, conference_id: str, payload: RegistrationCreate) -> Registration:
        now = utcnow()
        row = Registration(
            id=new_document_id(),
            conference_id=conference_id,
            status="pending",
            group_id=None,
            created_at=now,
            updated_at=now,
            **payload.model_dump(),
        )
        try:
            with self.transaction() as session:
                session.add(row)
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Registration store write failed: {exc}") from exc
        return row
