from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog

from shareasecret.config import Settings
from shareasecret.errors import (
    DuplicateIdentifier,
    GenerationFailure,
    InvalidSecretInput,
    LifecycleError,
    PersistenceFailure,
    SecretNotFound,
)
from shareasecret.models.secret import DeletionReason
from shareasecret.services.identifiers import (
    generate_identifier,
    identifier_prefix,
    is_canonical_identifier,
)
from shareasecret.services.secret_store import SecretStore, utcnow

logger = structlog.get_logger()

ENVELOPE_SEPARATOR = "."
ENVELOPE_SEPARATOR_COUNT = 2


@dataclass(frozen=True, slots=True)
class CreatedSecret:
    management_id: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class ManagedSecret:
    management_id: str
    viewing_url: str
    delete_url: str


class SecretLifecycle:
    """
    Create, view, manage and delete secrets.

    Capability rules:
    - the viewing id only ever yields cipher text
    - the management id only ever yields the viewing link and the delete action
    - unknown and deleted ids are indistinguishable to callers
    """

    def __init__(
        self,
        store: SecretStore,
        settings: Settings,
        generate: Callable[[], str] = generate_identifier,
    ) -> None:
        self._store = store
        self._settings = settings
        self._generate = generate

    def validate(self, cipher_text: str, ttl: int) -> None:
        # The server can't check the ciphertext itself, only that it is shaped
        # like the envelope the front-end produces
        if not cipher_text or cipher_text.count(ENVELOPE_SEPARATOR) != ENVELOPE_SEPARATOR_COUNT:
            raise InvalidSecretInput("Secret format is invalid. Please try again.")
        if len(cipher_text) > self._settings.max_cipher_text_length:
            raise InvalidSecretInput(
                f"Secret exceeds {self._settings.max_cipher_text_length} characters."
            )
        if ttl not in self._settings.allowed_ttls:
            raise InvalidSecretInput("Unable to parse the TTL (time to live) for the secret.")

    def _draw_identifiers(self) -> tuple[str, str]:
        viewing_id = self._generate()
        management_id = self._generate()
        while management_id == viewing_id:
            management_id = self._generate()
        return viewing_id, management_id

    def create(self, cipher_text: str, ttl: int) -> CreatedSecret:
        """
        Persist a new secret and return its management id.

        Identifier pairs are redrawn only when the store reports a duplicate,
        up to `identifier_attempts` times. At 192 bits a collision means the
        generator is broken, so running out of attempts is an internal error.
        """
        self.validate(cipher_text, ttl)

        attempts = self._settings.identifier_attempts
        for attempt in range(1, attempts + 1):
            try:
                viewing_id, management_id = self._draw_identifiers()
            except GenerationFailure as e:
                logger.error("identifier_generation_failed", operation="create", error=str(e))
                raise LifecycleError("create") from e

            created_at = utcnow()
            try:
                self._store.create(
                    viewing_id=viewing_id,
                    management_id=management_id,
                    cipher_text=cipher_text,
                    ttl=ttl,
                    created_at=created_at,
                )
            except DuplicateIdentifier:
                logger.warning(
                    "identifier_collision",
                    operation="create",
                    attempt=attempt,
                    max_attempts=attempts,
                )
                continue
            except PersistenceFailure as e:
                logger.error("secret_create_failed", operation="create", error=str(e))
                raise LifecycleError("create") from e

            logger.info(
                "secret_created",
                management_id_prefix=identifier_prefix(management_id),
                ttl=ttl,
                cipher_text_length=len(cipher_text),
            )
            return CreatedSecret(
                management_id=management_id,
                expires_at=created_at + timedelta(seconds=ttl),
            )

        logger.error("identifier_attempts_exhausted", operation="create", attempts=attempts)
        raise LifecycleError("create")

    def view(self, viewing_id: str) -> str:
        """Return the cipher text for an active secret, or raise SecretNotFound."""
        if not is_canonical_identifier(viewing_id):
            raise SecretNotFound()

        try:
            return self._store.fetch_cipher_text_by_viewing_id(viewing_id, now=utcnow())
        except PersistenceFailure as e:
            logger.error(
                "secret_view_failed",
                operation="view",
                viewing_id_prefix=identifier_prefix(viewing_id),
                error=str(e),
            )
            raise LifecycleError("view") from e

    def manage(self, management_id: str) -> ManagedSecret:
        """Resolve the shareable viewing link for a secret. Never returns cipher text."""
        if not is_canonical_identifier(management_id):
            raise SecretNotFound()

        try:
            viewing_id = self._store.fetch_viewing_id_by_management_id(
                management_id, now=utcnow()
            )
        except PersistenceFailure as e:
            logger.error(
                "secret_manage_failed",
                operation="manage",
                management_id_prefix=identifier_prefix(management_id),
                error=str(e),
            )
            raise LifecycleError("manage") from e

        base_url = self._settings.base_url
        return ManagedSecret(
            management_id=management_id,
            viewing_url=f"{base_url}/secret/{viewing_id}",
            delete_url=f"{base_url}/manage-secret/{management_id}/delete",
        )

    def delete(self, management_id: str) -> None:
        """Delete a secret. Succeeds whether or not the secret existed."""
        self._tombstone(management_id, DeletionReason.USER_DELETED, operation="delete")

    def expire(self, management_id: str) -> None:
        """Mark a single secret as expired, for callers enforcing TTL themselves."""
        self._tombstone(management_id, DeletionReason.EXPIRED, operation="expire")

    def _tombstone(self, management_id: str, reason: DeletionReason, *, operation: str) -> None:
        if not is_canonical_identifier(management_id):
            return

        try:
            affected = self._store.soft_delete(management_id, reason, utcnow())
        except PersistenceFailure as e:
            logger.error(
                f"secret_{operation}_failed",
                operation=operation,
                management_id_prefix=identifier_prefix(management_id),
                error=str(e),
            )
            raise LifecycleError(operation) from e

        logger.info(
            f"secret_{operation}",
            management_id_prefix=identifier_prefix(management_id),
            reason=reason.value,
            affected=affected,
        )

    def sweep(self) -> int:
        """Expire every secret whose TTL has elapsed. Returns the number expired."""
        try:
            expired = self._store.expire_elapsed(utcnow())
        except PersistenceFailure as e:
            logger.error("secret_sweep_failed", operation="sweep", error=str(e))
            raise LifecycleError("sweep") from e

        if expired:
            logger.info("secrets_expired", count=expired)
        return expired
