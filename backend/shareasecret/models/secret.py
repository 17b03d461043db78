import enum
from datetime import UTC, datetime

from sqlalchemy import DateTime, Enum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from shareasecret.database import Base


class DeletionReason(str, enum.Enum):
    USER_DELETED = "user_deleted"
    EXPIRED = "expired"


class Secret(Base):
    __tablename__ = "secrets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Capabilities: viewing grants read, management grants delete
    viewing_id: Mapped[str] = mapped_column(String(48), unique=True, nullable=False)
    management_id: Mapped[str] = mapped_column(String(48), unique=True, nullable=False)

    # Client-side encrypted envelope, NULL once deleted
    cipher_text: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timing
    ttl: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(UTC).replace(tzinfo=None), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True, nullable=False)

    # Tombstone
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, default=None)
    deletion_reason: Mapped[DeletionReason | None] = mapped_column(
        Enum(
            DeletionReason,
            name="deletion_reason",
            native_enum=False,
            length=20,
            values_callable=lambda reasons: [r.value for r in reasons],
        ),
        nullable=True,
        default=None,
    )

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None and self.cipher_text is not None
