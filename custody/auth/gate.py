"""
Local authentication gate.

Wraps the platform's biometric/passcode check in a yes/no answer. Every
decrypt of the wallet secret must be preceded by a successful
``authenticate`` call in the same operation; results are never cached.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..config import settings

logger = logging.getLogger(__name__)


class AuthPlatform(ABC):
    """Platform authentication backend supplied by the host application."""

    @abstractmethod
    async def has_capability(self) -> bool:
        """True if biometric or passcode hardware is available"""
        pass

    @abstractmethod
    async def prompt(self, message: str) -> bool:
        """Show the platform prompt and resolve to the user's outcome"""
        pass


class AuthGate:
    """Stateless capability check in front of KeyVault.decrypt."""

    def __init__(self, platform: AuthPlatform, *, default_prompt: Optional[str] = None):
        self._platform = platform
        self._default_prompt = default_prompt or settings.auth_prompt

    async def check_hardware_present(self) -> bool:
        try:
            return bool(await self._platform.has_capability())
        except Exception as exc:  # noqa: BLE001
            logger.warning("Authentication capability check failed: %s", exc, exc_info=True)
            return False

    async def authenticate(self, prompt: Optional[str] = None) -> bool:
        """
        Ask the platform to authenticate the user.

        Returns False on decline, cancellation or missing hardware. Platform
        errors are logged and also reported as False.
        """
        if not await self.check_hardware_present():
            logger.info("Authentication unavailable: no biometric or passcode hardware")
            return False

        try:
            result = await self._platform.prompt(prompt or self._default_prompt)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Platform authentication errored: %s", exc, exc_info=True)
            return False

        if result is not True:
            logger.info("Authentication declined")
            return False
        return True
