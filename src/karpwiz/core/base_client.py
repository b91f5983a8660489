"""Base class for the inventory and pricing providers."""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
import structlog

from .exceptions import UpstreamUnavailableException

logger = structlog.get_logger(__name__)


class BaseClient(ABC):
    """Async data provider with lazy connection handling.

    Subclasses set `provider`, the name reported in UpstreamUnavailableException
    when the provider cannot serve data.
    """

    provider = "provider"

    def __init__(self, config: Dict[str, Any], name: Optional[str] = None):
        self.config = config
        self.name = name or self.__class__.__name__
        self._connected = False
        self.logger = logger.bind(client=self.name)

    @abstractmethod
    async def connect(self) -> None:
        """Attach to the data source; raises UpstreamUnavailableException on failure."""

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Whether the provider can currently serve data."""

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def ensure_connected(self) -> None:
        """Connect on first use; later calls are no-ops."""
        if not self._connected:
            await self.connect()

    def _require_connection(self) -> None:
        if not self._connected:
            raise UpstreamUnavailableException(self.provider, "Client not connected")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
