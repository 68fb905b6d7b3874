# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261019v1
# ---------------------------------------------------------------------------
"""
Outbound mail and SMS.

No delivery backend is wired up yet: messages are written to the log.  The
secret part (link token or one-time code) is logged only outside
production, so the flows can be exercised locally.
"""

from urllib.parse import urlencode

from core.config import settings
from core.logger import logger


def _link(path: str, token: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}{path}?{urlencode({'token': token})}"


def _deliver(recipient: str, subject: str, path: str, token: str) -> None:
    logger.info("Mail '%s' to %s (link %s)", subject, recipient, path)
    if not settings.is_production:
        logger.info("Mail link for %s: %s", recipient, _link(path, token))


def send_verification_email(email: str, token: str) -> None:
    _deliver(email, "Verify your email address", "/auth/verify-email", token)


def send_password_reset_email(email: str, token: str) -> None:
    _deliver(email, "Reset your password", "/auth/reset-password", token)


def send_phone_otp(phone_number: str, code: str) -> None:
    """Text a one-time verification code to *phone_number*."""
    logger.info("SMS verification code to %s", phone_number)
    if not settings.is_production:
        logger.info("SMS code for %s: %s", phone_number, code)
