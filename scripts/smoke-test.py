#!/usr/bin/env python3
"""
Smoke test for ShareASecret staging/production deployments.

This script is a deploy guardrail:
- Fast (a few seconds typical)
- Leaves nothing behind (the secret it creates is deleted again)
- Actionable failures (step name, HTTP status/body preview)

Flow (default):
1. Health check
2. Index page
3. Secret creation (POST /secret)
4. Manage page (GET /manage-secret/{id})
5. View secret (GET /secret/{id}) and compare cipher text
6. Delete (POST /manage-secret/{id}/delete)
7. Viewing and management links both redirect after deletion

Usage:
    ./scripts/smoke-test.py https://staging.example.com
    ./scripts/smoke-test.py https://staging.example.com --health-only
"""

import argparse
import json
import random
import secrets
import sys
import time
from dataclasses import dataclass
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.request import HTTPRedirectHandler, Request, build_opener

SkipCheck = Callable[["SmokeContext"], str | None]


class ApiError(RuntimeError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"API error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


SMOKE_TTL_SECONDS = 3600
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_RETRIES = 2
DEFAULT_RETRY_BACKOFF_SECONDS = 0.5
MAX_ERROR_BODY_CHARS = 10_000
BODY_PREVIEW_BYTES = 200
MAX_BACKOFF_SECONDS = 4.0


def log(msg: str) -> None:
    ts = time.strftime("%H:%M:%S")
    print(f"[{ts}] {msg}", flush=True)


def _preview_bytes(value: bytes, limit: int = BODY_PREVIEW_BYTES) -> bytes:
    if len(value) <= limit:
        return value
    return value[:limit] + b"..."


def _decode_limited(value: bytes, max_chars: int = MAX_ERROR_BODY_CHARS) -> str:
    decoded = value.decode(errors="replace")
    if len(decoded) <= max_chars:
        return decoded
    return decoded[:max_chars] + "…"


def _is_retryable_status(status_code: int) -> bool:
    return status_code in {408, 425, 429, 502, 503, 504, 522, 524}


class _NoRedirect(HTTPRedirectHandler):
    """Surface 303s to the caller; the not-found contract is the redirect itself."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


_opener = build_opener(_NoRedirect)


@dataclass
class HttpClient:
    base_url: str
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    retries: int = DEFAULT_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS

    def request(
        self,
        method: str,
        path: str,
        *,
        data: dict[str, Any] | None = None,
    ) -> tuple[int, dict[str, str], bytes]:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"} if data is not None else {}
        body = json.dumps(data).encode() if data is not None else None

        max_attempts = max(1, self.retries + 1)
        for attempt in range(1, max_attempts + 1):
            try:
                request = Request(url, data=body, headers=headers, method=method)
                try:
                    with _opener.open(request, timeout=self.timeout_seconds) as response:
                        return response.getcode(), dict(response.headers.items()), response.read()
                except HTTPError as e:
                    error_body = e.read() if e.fp else b""
                    resp_headers = dict(e.headers.items()) if e.headers else {}
                    if attempt < max_attempts and _is_retryable_status(e.code):
                        self._sleep_backoff(attempt)
                        continue
                    return e.code, resp_headers, error_body
            except (URLError, TimeoutError) as e:
                if attempt < max_attempts:
                    self._sleep_backoff(attempt)
                    continue
                raise RuntimeError(f"Network error after {attempt} attempts: {e}") from e

        raise RuntimeError(f"No response from {method} {path}")

    def json(
        self,
        method: str,
        path: str,
        *,
        data: dict[str, Any] | None = None,
        expected_status: int = 200,
    ) -> tuple[dict[str, str], dict[str, Any]]:
        status, headers, body = self.request(method, path, data=data)
        if status != expected_status:
            raise ApiError(status, _decode_limited(body))
        try:
            return headers, json.loads(body.decode())
        except json.JSONDecodeError as e:
            raise RuntimeError(
                f"Invalid JSON response from {method} {path}: preview={_preview_bytes(body)!r}"
            ) from e

    def _sleep_backoff(self, attempt: int) -> None:
        base = self.retry_backoff_seconds * (2 ** (attempt - 1))
        jitter = random.random() * self.retry_backoff_seconds
        time.sleep(min(MAX_BACKOFF_SECONDS, base + jitter))


def wait_for_health(client: HttpClient, max_attempts: int = 30, delay: float = 2.0) -> bool:
    for attempt in range(1, max_attempts + 1):
        try:
            status, _, body = client.request("GET", "/health")
            if status == 200 and json.loads(body.decode()).get("status") == "healthy":
                return True
            log(f"Health attempt {attempt}/{max_attempts}: status={status}")
        except (RuntimeError, json.JSONDecodeError) as e:
            log(f"Health attempt {attempt}/{max_attempts}: {e}")
        if attempt < max_attempts:
            time.sleep(delay)
    return False


def generate_test_envelope() -> str:
    """Random stand-in for a client-side encrypted envelope (three dot-separated parts)."""
    return ".".join(secrets.token_urlsafe(24) for _ in range(3))


@dataclass
class SmokeContext:
    client: HttpClient
    max_health_attempts: int

    cipher_text: str | None = None
    management_id: str | None = None
    viewing_path: str | None = None
    delete_path: str | None = None

    def require_management_id(self) -> str:
        if not self.management_id:
            raise RuntimeError("Missing management_id (step ordering bug)")
        return self.management_id

    def require_viewing_path(self) -> str:
        if not self.viewing_path:
            raise RuntimeError("Missing viewing_path (step ordering bug)")
        return self.viewing_path

    def require_delete_path(self) -> str:
        if not self.delete_path:
            raise RuntimeError("Missing delete_path (step ordering bug)")
        return self.delete_path


@dataclass(frozen=True)
class Step:
    name: str
    run: Callable[[SmokeContext], None]
    # Return `None` to run the step; return a string to skip with that reason.
    skip_reason: SkipCheck | None = None


@dataclass(frozen=True)
class StepResult:
    name: str
    status: str  # passed|skipped|failed
    seconds: float
    detail: str | None = None


def _print_summary(results: list[StepResult], total_seconds: float) -> None:
    log("Summary:")
    for result in results:
        suffix = f" - {result.detail}" if result.detail else ""
        log(f"  {result.status.upper():7} {result.name} ({result.seconds:.2f}s){suffix}")
    log(f"Total: {total_seconds:.2f}s")


def run_steps(ctx: SmokeContext, steps: list[Step]) -> bool:
    results: list[StepResult] = []
    overall_start = time.time()

    for step in steps:
        reason = step.skip_reason(ctx) if step.skip_reason else None
        if reason:
            log(f"SKIP: {step.name}: {reason}")
            results.append(StepResult(step.name, "skipped", 0.0, reason))
            continue

        log(f"STEP: {step.name}")
        start = time.time()
        try:
            step.run(ctx)
        except Exception as e:
            elapsed = time.time() - start
            results.append(StepResult(step.name, "failed", elapsed, str(e)))
            _print_summary(results, time.time() - overall_start)
            return False

        elapsed = time.time() - start
        results.append(StepResult(step.name, "passed", elapsed))
        log(f"OK: {step.name} ({elapsed:.2f}s)")

    _print_summary(results, time.time() - overall_start)
    return True


def _path_of(url: str, base_url: str) -> str:
    if not url.startswith(base_url):
        raise RuntimeError(f"Link {url!r} does not start with {base_url!r}; check BASE_URL")
    return url[len(base_url):]


def _expect_redirect_home(ctx: SmokeContext, method: str, path: str) -> None:
    status, headers, body = ctx.client.request(method, path)
    location = headers.get("location") or headers.get("Location")
    if status != 303 or location != "/":
        raise RuntimeError(
            f"{method} {path}: expected 303 to '/', got {status} location={location!r} "
            f"preview={_preview_bytes(body)!r}"
        )


def step_health(ctx: SmokeContext) -> None:
    log(f"Checking health: {ctx.client.base_url}/health")
    if not wait_for_health(ctx.client, max_attempts=ctx.max_health_attempts):
        raise RuntimeError("Health check failed")


def step_index(ctx: SmokeContext) -> None:
    _, body = ctx.client.json("GET", "/")
    if "notifications" not in body:
        raise RuntimeError(f"Index response missing notifications: {body!r}")


def step_create_secret(ctx: SmokeContext) -> None:
    ctx.cipher_text = generate_test_envelope()
    headers, body = ctx.client.json(
        "POST",
        "/secret",
        data={"encryptedSecret": ctx.cipher_text, "ttl": SMOKE_TTL_SECONDS},
        expected_status=201,
    )
    ctx.management_id = body["management_id"]
    location = headers.get("location") or headers.get("Location")
    if location != f"/manage-secret/{ctx.management_id}":
        raise RuntimeError(f"Unexpected Location header: {location!r}")
    log(f"Created secret (expires_at={body['expires_at']})")


def step_manage(ctx: SmokeContext) -> None:
    _, body = ctx.client.json("GET", f"/manage-secret/{ctx.require_management_id()}")
    ctx.viewing_path = _path_of(body["viewing_url"], ctx.client.base_url)
    ctx.delete_path = _path_of(body["delete_url"], ctx.client.base_url)
    if ctx.management_id in ctx.viewing_path:
        raise RuntimeError("Viewing link exposes the management identifier")


def step_view(ctx: SmokeContext) -> None:
    _, body = ctx.client.json("GET", ctx.require_viewing_path())
    if body["cipher_text"] != ctx.cipher_text:
        raise RuntimeError("Cipher text returned by the viewing link does not match")


def step_delete(ctx: SmokeContext) -> None:
    _expect_redirect_home(ctx, "POST", ctx.require_delete_path())


def step_links_dead(ctx: SmokeContext) -> None:
    _expect_redirect_home(ctx, "GET", ctx.require_viewing_path())
    _expect_redirect_home(ctx, "GET", f"/manage-secret/{ctx.require_management_id()}")


def main() -> int:
    parser = argparse.ArgumentParser(description="ShareASecret smoke test")
    parser.add_argument("base_url", help="Base URL (e.g., https://staging.example.com)")
    parser.add_argument(
        "--health-only",
        action="store_true",
        help="Only run health check, skip full flow",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_TIMEOUT_SECONDS,
        help=f"HTTP timeout seconds (default: {DEFAULT_TIMEOUT_SECONDS:g})",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=DEFAULT_RETRIES,
        help=f"Retries for transient failures (default: {DEFAULT_RETRIES})",
    )
    parser.add_argument(
        "--max-health-attempts",
        type=int,
        default=30,
        help="Max health check attempts (default: 30)",
    )
    args = parser.parse_args()

    try:
        base_url = args.base_url.rstrip("/")
        client = HttpClient(base_url=base_url, timeout_seconds=args.timeout, retries=args.retries)
        ctx = SmokeContext(client=client, max_health_attempts=args.max_health_attempts)

        steps: list[Step] = [Step("health", step_health)]
        if args.health_only:
            log("Health-only mode: skipping full flow")
        else:
            steps.extend(
                [
                    Step("index", step_index),
                    Step("create secret", step_create_secret),
                    Step("manage", step_manage),
                    Step("view", step_view),
                    Step("delete", step_delete),
                    Step("links dead after delete", step_links_dead),
                ]
            )

        ok = run_steps(ctx, steps)
        return 0 if ok else 1
    except Exception as e:
        log(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
