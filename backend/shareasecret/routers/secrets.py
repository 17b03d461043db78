from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, Response
from fastapi.responses import RedirectResponse

from shareasecret import notifications
from shareasecret.dependencies import get_lifecycle
from shareasecret.errors import InvalidSecretInput, LifecycleError, SecretNotFound
from shareasecret.middleware.logging import current_correlation_id, redact_path
from shareasecret.schemas.secret import (
    SecretCreate,
    SecretCreateResponse,
    SecretManageResponse,
    SecretViewResponse,
)
from shareasecret.services.alert_service import send_error_alert
from shareasecret.services.secret_service import SecretLifecycle

router = APIRouter()

NOT_FOUND_MESSAGE = "Secret does not exist or has been deleted."
DELETED_MESSAGE = "Secret successfully deleted."


def see_other(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def not_found_redirect() -> RedirectResponse:
    response = see_other("/")
    notifications.set_error(response, NOT_FOUND_MESSAGE)
    return response


def alert_internal_error(
    background_tasks: BackgroundTasks, request: Request, error: LifecycleError
) -> None:
    background_tasks.add_task(
        send_error_alert,
        error_type="LifecycleError",
        message=f"secret {error} failed",
        path=redact_path(request.url.path),
        correlation_id=current_correlation_id(),
    )


@router.post("/secret", response_model=SecretCreateResponse, status_code=201)
def create_secret(
    secret_data: SecretCreate,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    lifecycle: SecretLifecycle = Depends(get_lifecycle),
):
    """
    Store a client-side encrypted secret.

    Responds 201 with the management page in the Location header. The viewing
    link is only ever revealed on that management page.
    """
    try:
        created = lifecycle.create(secret_data.encrypted_secret, secret_data.ttl)
    except InvalidSecretInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LifecycleError as e:
        alert_internal_error(background_tasks, request, e)
        return Response(status_code=500)

    location = f"/manage-secret/{created.management_id}"
    response.headers["Location"] = location

    return SecretCreateResponse(
        management_id=created.management_id,
        location=location,
        expires_at=created.expires_at,
    )


@router.get("/secret/{viewing_id}", response_model=SecretViewResponse)
def view_secret(
    viewing_id: str,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    lifecycle: SecretLifecycle = Depends(get_lifecycle),
):
    """Return the encrypted envelope so the client can decrypt it with the password."""
    try:
        cipher_text = lifecycle.view(viewing_id)
    except SecretNotFound:
        return not_found_redirect()
    except LifecycleError as e:
        alert_internal_error(background_tasks, request, e)
        return see_other("/oops")

    return SecretViewResponse(
        cipher_text=cipher_text,
        notifications=notifications.consume(request, response),
    )


@router.get("/manage-secret/{management_id}", response_model=SecretManageResponse)
def manage_secret(
    management_id: str,
    request: Request,
    response: Response,
    background_tasks: BackgroundTasks,
    lifecycle: SecretLifecycle = Depends(get_lifecycle),
):
    """Return the shareable viewing link and the delete action for a secret."""
    try:
        managed = lifecycle.manage(management_id)
    except SecretNotFound:
        return not_found_redirect()
    except LifecycleError as e:
        alert_internal_error(background_tasks, request, e)
        return see_other("/oops")

    return SecretManageResponse(
        management_id=managed.management_id,
        viewing_url=managed.viewing_url,
        delete_url=managed.delete_url,
        notifications=notifications.consume(request, response),
    )


@router.post("/manage-secret/{management_id}/delete")
def delete_secret(
    management_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    lifecycle: SecretLifecycle = Depends(get_lifecycle),
):
    """
    Delete a secret and scrub its cipher text.

    Always reports success unless storage fails, so the response never tells
    whether the secret existed.
    """
    try:
        lifecycle.delete(management_id)
    except LifecycleError as e:
        alert_internal_error(background_tasks, request, e)
        return see_other("/oops")

    response = see_other("/")
    notifications.set_success(response, DELETED_MESSAGE)
    return response
