from __future__ import annotations

import logging
from typing import Any, Optional

import aioboto3

from controlplane.services.config import AwsConfig

logger = logging.getLogger(__name__)


class SESServiceError(RuntimeError):
    pass


class SESService:
    """Transactional email sender. Callers treat every send as best-effort."""

    def __init__(self, config: AwsConfig, *, sender_email: str) -> None:
        self._config = config
        self._sender_email = sender_email
        self._session = aioboto3.Session()

    def _client(self) -> Any:
        return self._session.client(
            "ses",
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    async def send(self, *, to: str, subject: str, body: str) -> Optional[str]:
        try:
            ses_client: Any = self._client()
            async with ses_client as ses:
                response = await ses.send_email(
                    Source=self._sender_email,
                    Destination={"ToAddresses": [to]},
                    Message={
                        "Subject": {"Data": subject, "Charset": "UTF-8"},
                        "Body": {"Text": {"Data": body, "Charset": "UTF-8"}},
                    },
                )
            return response.get("MessageId")
        except Exception as exc:
            logger.exception("SES send_email failed")
            raise SESServiceError(f"Failed to send email to {to}") from exc
