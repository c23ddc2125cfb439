"""Magic link delivery via the Resend API.

Simple HTTP POST to Resend with a plain-text body. Delivery failure never
invalidates the token; the caller reports it as a warning.
"""

import logging
from urllib.parse import quote, urlencode

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"

_SUBJECTS = {
    "LOGIN": "Your FixRx Login Link",
    "REGISTRATION": "Complete Your FixRx Registration",
}


def build_magic_link_urls(*, token: str, email: str) -> tuple[str, str]:
    """Build the HTTP landing URL and the mobile deep link for a token.

    Args:
        token: Plain (unhashed) magic link token.
        email: Normalized recipient email.

    Returns:
        (web_url, deep_link). The web page hands off to the app.
    """
    params = urlencode({"token": token, "email": email}, quote_via=quote)
    web_url = f"{settings.magic_link_base_url.rstrip('/')}/magic-link?{params}"
    deep_link = f"{settings.app_scheme}://magic-link?{params}"
    return web_url, deep_link


def render_magic_link_email(
    *,
    purpose: str,
    web_url: str,
    deep_link: str,
    ttl_minutes: int,
    first_name: str | None = None,
) -> tuple[str, str]:
    """Render subject and plain-text body for a magic link email.

    Returns:
        (subject, text).
    """
    subject = _SUBJECTS.get(purpose, _SUBJECTS["LOGIN"])
    if purpose == "REGISTRATION":
        greeting = "Welcome to FixRx!"
        action = "Use this link to complete your registration:"
    else:
        greeting = f"Welcome back, {first_name}!" if first_name else "Welcome back!"
        action = "Use this link to sign in to your FixRx account:"
    text = (
        f"{greeting}\n\n{action}\n\n{web_url}\n\n"
        f"On a device with the FixRx app installed you can also open:\n{deep_link}\n\n"
        f"This link expires in {ttl_minutes} minutes and can only be used once. "
        "If you didn't request this, you can safely ignore this email."
    )
    return subject, text


async def send_magic_link_email(
    *,
    to_email: str,
    token: str,
    purpose: str,
    first_name: str | None = None,
) -> bool:
    """Send a magic link email via Resend.

    Args:
        to_email: Recipient email address.
        token: Plain (unhashed) magic link token.
        purpose: "LOGIN" or "REGISTRATION"; selects the template.
        first_name: Optional name for the login greeting.

    Returns:
        True if the provider accepted the message, False otherwise.
    """
    if not settings.email_delivery_configured:
        logger.warning("Email delivery not configured, skipping magic link email")
        return False

    web_url, deep_link = build_magic_link_urls(token=token, email=to_email)
    subject, text = render_magic_link_email(
        purpose=purpose,
        web_url=web_url,
        deep_link=deep_link,
        ttl_minutes=settings.magic_link_ttl_minutes,
        first_name=first_name,
    )

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
                },
                json={
                    "from": settings.email_from,
                    "to": to_email,
                    "subject": subject,
                    "text": text,
                },
                timeout=settings.delivery_timeout_seconds,
            )
            resp.raise_for_status()
    except httpx.HTTPError as exc:
        # Exception text may echo the request URL; log only the type
        logger.warning(
            "Failed to send magic link email to %s: %s", to_email, type(exc).__name__
        )
        return False
    return True
