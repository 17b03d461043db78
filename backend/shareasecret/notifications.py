"""
One-shot user notifications carried in cookies.

A response sets a notification, the next page that renders notifications
reads it and clears it in the same response. Notifications never touch the
secret store.
"""

from urllib.parse import quote, unquote

from starlette.requests import Request
from starlette.responses import Response

from shareasecret.config import settings
from shareasecret.schemas.secret import Notifications

ERROR = "err"
SUCCESS = "success"


def _cookie_name(kind: str) -> str:
    return f"flash_{kind}"


def set_notification(response: Response, kind: str, message: str) -> None:
    response.set_cookie(
        _cookie_name(kind),
        quote(message),
        path="/",
        httponly=True,
        samesite="lax",
        secure=settings.cookie_secure,
    )


def set_error(response: Response, message: str) -> None:
    set_notification(response, ERROR, message)


def set_success(response: Response, message: str) -> None:
    set_notification(response, SUCCESS, message)


def _take(request: Request, response: Response, kind: str) -> str | None:
    name = _cookie_name(kind)
    value = request.cookies.get(name)
    if value is None:
        return None

    response.delete_cookie(name, path="/")
    return unquote(value) or None


def consume(request: Request, response: Response) -> Notifications:
    """Read any pending notifications and clear them on the client."""
    return Notifications(
        error=_take(request, response, ERROR),
        success=_take(request, response, SUCCESS),
    )
