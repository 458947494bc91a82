import logging

import requests

import config
from errors import Unauthenticated, UpstreamError

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")


def verify_google_credential(credential: str) -> dict:
    """Validate a Google ID token and return its claims (email, names, picture)."""
    if not config.GOOGLE_CLIENT_ID:
        raise UpstreamError("Google sign-in is not configured")
    try:
        response = requests.get(
            config.GOOGLE_TOKENINFO_URL,
            params={"id_token": credential},
            timeout=config.OAUTH_TIMEOUT,
        )
    except requests.RequestException as exc:
        logger.warning("Google token check failed: %s", exc)
        raise UpstreamError("Could not reach Google, please try again.")

    if response.status_code != 200:
        raise Unauthenticated("Invalid Google credential")

    claims = response.json()
    if claims.get("aud") != config.GOOGLE_CLIENT_ID or claims.get("iss") not in GOOGLE_ISSUERS:
        logger.warning("Google credential for another client rejected")
        raise Unauthenticated("Invalid Google credential")
    if str(claims.get("email_verified")).lower() != "true":
        raise Unauthenticated("Google account email is not verified")
    return claims
