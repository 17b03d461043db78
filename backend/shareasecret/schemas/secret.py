from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class Notifications(BaseModel):
    error: str | None = None
    success: str | None = None


class SecretCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    encrypted_secret: str = Field(
        ..., alias="encryptedSecret", description="Client-side encrypted envelope"
    )
    ttl: int = Field(..., description="Time to live in seconds")


class SecretCreateResponse(BaseModel):
    management_id: str
    location: str
    expires_at: datetime


class SecretViewResponse(BaseModel):
    cipher_text: str
    notifications: Notifications


class SecretManageResponse(BaseModel):
    management_id: str
    viewing_url: str
    delete_url: str
    notifications: Notifications


class IndexResponse(BaseModel):
    notifications: Notifications


class MessageResponse(BaseModel):
    message: str
