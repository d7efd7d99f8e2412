"""
Public frontend base URL for links sent by email (signing links).
No other code should build frontend links directly.
"""
import os
import logging

logger = logging.getLogger(__name__)

SIGNING_PATH = "/signature"


def get_public_app_url(for_email_links: bool = False) -> str:
    """
    Return the normalized public frontend base URL (no trailing slash).
    Fallback order: FRONTEND_PUBLIC_URL, PUBLIC_APP_URL, FRONTEND_URL.

    Rules:
    - http is upgraded to https for any non-localhost host.
    - With for_email_links=True, a localhost URL in production raises
      ValueError so invitations never carry a link nobody can open.
    """
    raw = (
        (os.getenv("FRONTEND_PUBLIC_URL") or "").strip()
        or (os.getenv("PUBLIC_APP_URL") or "").strip()
        or (os.getenv("FRONTEND_URL") or "").strip()
    ).rstrip("/")
    if not raw:
        raw = "http://localhost:3000"
    if raw.startswith("http://") and "localhost" not in raw:
        raw = "https://" + raw.split("://", 1)[1]
    if for_email_links and "localhost" in raw.lower():
        env = (os.getenv("ENVIRONMENT") or os.getenv("ENV") or "").strip().lower()
        if env in ("production", "prod"):
            raise ValueError(
                "FRONTEND_PUBLIC_URL must be the public frontend URL in production (no localhost)."
            )
        logger.warning("Signing links use localhost; set FRONTEND_PUBLIC_URL for production emails.")
    return raw


def build_signing_url(token: str) -> str:
    """Signing page link for an invitation token: ``{base}/signature/{token}``."""
    return f"{get_public_app_url(for_email_links=True)}{SIGNING_PATH}/{token}"
