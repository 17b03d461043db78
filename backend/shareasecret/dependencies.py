from fastapi import Depends, Request

from shareasecret.config import settings
from shareasecret.services.secret_service import SecretLifecycle
from shareasecret.services.secret_store import SecretStore


def get_store(request: Request) -> SecretStore:
    """Dependency returning the store built in the application lifespan."""
    return request.app.state.store


def get_lifecycle(store: SecretStore = Depends(get_store)) -> SecretLifecycle:
    return SecretLifecycle(store, settings)
