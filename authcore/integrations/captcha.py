"""reCAPTCHA verification client."""

import logging

import httpx

from authcore.config.settings import settings

logger = logging.getLogger(__name__)


class RecaptchaService:
    """Boolean oracle over Google's siteverify endpoint.

    With no secret configured (local development) every token is accepted and a
    warning is logged.
    """

    def __init__(
        self,
        secret_key: str | None = None,
        verify_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secret_key = settings.recaptcha_secret_key if secret_key is None else secret_key
        self.verify_url = verify_url or settings.recaptcha_verify_url
        self.timeout = timeout or settings.recaptcha_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key)

    async def verify(self, token: str | None, remote_ip: str | None = None) -> bool:
        """Check a client CAPTCHA token. Never raises."""
        if not self.is_configured:
            logger.warning("reCAPTCHA secret key not configured, skipping verification")
            return True

        if not token:
            return False

        data = {"secret": self.secret_key, "response": token}
        if remote_ip:
            data["remoteip"] = remote_ip

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.verify_url, data=data)
                response.raise_for_status()
                result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"reCAPTCHA verification failed: {e}")
            return False

        success = bool(result.get("success"))
        if not success:
            logger.info(f"reCAPTCHA rejected token: {result.get('error-codes', [])}")
        return success


recaptcha_service = RecaptchaService()
