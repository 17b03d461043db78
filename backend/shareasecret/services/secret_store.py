from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta

from sqlalchemy import func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from shareasecret.errors import DuplicateIdentifier, PersistenceFailure, SecretNotFound
from shareasecret.models.secret import DeletionReason, Secret


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class SecretStore:
    """
    Durable storage for secrets.

    One instance is built at startup and shared by every request. Each
    operation runs in its own short-lived session, so the store is safe to
    call from concurrent worker threads. Uniqueness of both identifiers is
    enforced by the database, never by a read-then-write check.
    """

    def __init__(self, engine: Engine, *, ttl_gates_visibility: bool = False) -> None:
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        self._ttl_gates_visibility = ttl_gates_visibility

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            # The driver message can echo the statement and its bound values
            raise PersistenceFailure(f"{operation} failed ({type(e).__name__})") from e
        finally:
            session.close()

    def _visible(self, now: datetime | None) -> list:
        conditions = [Secret.deleted_at.is_(None), Secret.cipher_text.is_not(None)]
        if self._ttl_gates_visibility:
            conditions.append(Secret.expires_at > (now or utcnow()))
        return conditions

    def create(
        self,
        viewing_id: str,
        management_id: str,
        cipher_text: str,
        ttl: int,
        created_at: datetime,
    ) -> None:
        """Insert a new active secret. Raises DuplicateIdentifier on a uniqueness violation."""
        with self._session("create") as session:
            session.add(
                Secret(
                    viewing_id=viewing_id,
                    management_id=management_id,
                    cipher_text=cipher_text,
                    ttl=ttl,
                    created_at=created_at,
                    expires_at=created_at + timedelta(seconds=ttl),
                )
            )
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise DuplicateIdentifier("identifier already issued") from e

    def fetch_cipher_text_by_viewing_id(self, viewing_id: str, now: datetime | None = None) -> str:
        with self._session("fetch_cipher_text") as session:
            cipher_text = session.execute(
                select(Secret.cipher_text).where(
                    Secret.viewing_id == viewing_id, *self._visible(now)
                )
            ).scalar_one_or_none()

        if cipher_text is None:
            raise SecretNotFound()
        return cipher_text

    def fetch_viewing_id_by_management_id(
        self, management_id: str, now: datetime | None = None
    ) -> str:
        # Only the viewing id is selected: management never implies read access
        with self._session("fetch_viewing_id") as session:
            viewing_id = session.execute(
                select(Secret.viewing_id).where(
                    Secret.management_id == management_id, *self._visible(now)
                )
            ).scalar_one_or_none()

        if viewing_id is None:
            raise SecretNotFound()
        return viewing_id

    def soft_delete(self, management_id: str, reason: DeletionReason, deleted_at: datetime) -> int:
        """
        Tombstone a secret and scrub its cipher text.

        Already-deleted and unknown ids affect zero rows; the first deletion's
        reason and timestamp are never overwritten.
        """
        with self._session("soft_delete") as session:
            result = session.execute(
                update(Secret)
                .where(Secret.management_id == management_id, Secret.deleted_at.is_(None))
                .values(deleted_at=deleted_at, deletion_reason=reason, cipher_text=None)
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount

    def mark_expired(self, management_id: str, now: datetime) -> int:
        return self.soft_delete(management_id, DeletionReason.EXPIRED, now)

    def expire_elapsed(self, now: datetime) -> int:
        """Tombstone every active secret whose TTL has run out. Returns the count."""
        with self._session("expire_elapsed") as session:
            result = session.execute(
                update(Secret)
                .where(Secret.deleted_at.is_(None), Secret.expires_at <= now)
                .values(
                    deleted_at=now,
                    deletion_reason=DeletionReason.EXPIRED,
                    cipher_text=None,
                )
                .execution_options(synchronize_session=False)
            )
            session.commit()
            return result.rowcount

    def count_active(self) -> int:
        with self._session("count_active") as session:
            return session.execute(
                select(func.count()).select_from(Secret).where(*self._visible(None))
            ).scalar_one()
