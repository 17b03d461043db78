from shareasecret.schemas.secret import (
    IndexResponse,
    MessageResponse,
    Notifications,
    SecretCreate,
    SecretCreateResponse,
    SecretManageResponse,
    SecretViewResponse,
)

__all__ = [
    "IndexResponse",
    "MessageResponse",
    "Notifications",
    "SecretCreate",
    "SecretCreateResponse",
    "SecretManageResponse",
    "SecretViewResponse",
]
