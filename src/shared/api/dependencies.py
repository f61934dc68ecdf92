"""
App State Dependencies
======================

FastAPI dependencies returning the singletons built at startup. Tests swap
them by assigning to app.state.
"""

from typing import Any, Optional

from fastapi import Depends, Request

from src.core import RateLimitExceededException


def get_telephony(request: Request) -> Optional[Any]:
    """Telephony client, or None when Twilio is not configured."""
    return getattr(request.app.state, "telephony", None)


def get_triage_service(request: Request) -> Any:
    return request.app.state.triage_service


def get_rate_limiter(request: Request) -> Any:
    return request.app.state.rate_limiter


def get_media_store(request: Request) -> Any:
    return request.app.state.media_store


def get_signature_verifier(request: Request) -> Any:
    return request.app.state.signature_verifier


def rate_limit(
    key: str,
    limit: Optional[int] = None,
    window_seconds: Optional[int] = None,
    per_client: bool = False
):
    """
    Dependency counting one request against a rate limit bucket.

    key is formatted with the route's path parameters. With per_client the
    X-Forwarded-For address is appended when the header is present.

    Raises:
        RateLimitExceededException: If the bucket is over its limit
    """

    async def dependency(request: Request, rate_limiter: Any = Depends(get_rate_limiter)) -> None:
        bucket = key.format(**request.path_params)
        if per_client:
            forwarded = request.headers.get("x-forwarded-for")
            if forwarded:
                bucket = f"{bucket}:{forwarded}"

        verdict = await rate_limiter.limit(bucket, limit=limit, window_seconds=window_seconds)
        if not verdict.success:
            raise RateLimitExceededException(bucket, verdict.retry_after)

    return dependency
