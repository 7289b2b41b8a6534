import logging
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from google.auth.transport import requests
from google.oauth2 import id_token

from app.utils.config import Settings

settings = Settings()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        logging.warning("Missing Authorization header in Pub/Sub push request")
        raise _unauthorized("Unauthorized: missing authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logging.warning("Malformed Authorization header in Pub/Sub push request")
        raise _unauthorized("Unauthorized: malformed authorization header")
    return parts[1]


async def verify_token(request: Request, authorization: str = Header(None)):
    """
    Verifies the Google-signed OIDC token Pub/Sub attaches to push requests.
    The token must be issued for this endpoint's URL and carry the verified
    email of the configured push service account.
    """
    # For local development, bypass the authentication check.
    if settings.app_env == "local":
        return

    if not settings.pubsub_base_url or not settings.pubsub_service_account_email:
        logging.error(
            "Pub/Sub push auth configured without an audience or expected email"
        )
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Configuration error: audience or email not set",
        )

    token = _bearer_token(authorization)
    audience = f"{settings.pubsub_base_url}{request.url.path}"

    try:
        claims = id_token.verify_oauth2_token(token, requests.Request(), audience=audience)
    except ValueError as e:
        logging.error(f"Failed to validate Pub/Sub JWT: {e}")
        raise _unauthorized("Unauthorized: invalid token")

    email = claims.get("email")
    if not email or not claims.get("email_verified"):
        logging.error("Email claim missing or unverified in Pub/Sub JWT")
        raise _forbidden("Forbidden: invalid email claim in token")

    if email != settings.pubsub_service_account_email:
        logging.warning(
            f"Pub/Sub JWT email does not match expected service account. "
            f"Got: {email}, Expected: {settings.pubsub_service_account_email}"
        )
        raise _forbidden("Forbidden: token email does not match expected service account")
