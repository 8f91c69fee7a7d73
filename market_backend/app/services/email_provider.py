"""
Email providers.

Delivery itself is outside this service; providers only hand a rendered
message to whatever transport is configured.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional
import logging

logger = logging.getLogger(__name__)


class EmailProvider(ABC):
    """Abstract provider for outbound email."""

    @abstractmethod
    async def send_email(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        raise NotImplementedError()


class LogEmailProvider(EmailProvider):
    """Provider that logs messages (useful for dev/testing)."""

    async def send_email(self, to: str, subject: str, body: str, meta: Optional[Dict] = None) -> Dict:
        logger.info("[LogEmailProvider] Sending email to %s subject=%s", to, subject)
        logger.debug("Email body: %s", body)
        return {"status": "sent", "provider": "log"}
