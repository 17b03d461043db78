from fastapi import APIRouter, Request, Response
from fastapi.responses import PlainTextResponse

from shareasecret import notifications
from shareasecret.schemas.secret import IndexResponse, MessageResponse

router = APIRouter()

OOPS_MESSAGE = "Something went wrong. Please try again later."
NOJS_MESSAGE = (
    "JavaScript is required. Secrets are encrypted and decrypted in your browser, "
    "so the server never sees them in plain text."
)

# Viewing and management links are capabilities; keep crawlers off them
ROBOTS_TXT = "User-agent: *\nDisallow: /secret/\nDisallow: /manage-secret/\n"


@router.get("/", response_model=IndexResponse)
def index(request: Request, response: Response):
    """Landing page. Consumes any notification left by a redirect."""
    return IndexResponse(notifications=notifications.consume(request, response))


@router.get("/nojs", response_model=MessageResponse)
def nojs():
    return MessageResponse(message=NOJS_MESSAGE)


@router.get("/oops", response_model=MessageResponse)
def oops():
    return MessageResponse(message=OOPS_MESSAGE)


@router.get("/robots.txt", response_class=PlainTextResponse)
def robots_txt():
    return ROBOTS_TXT
