"""
Registry of source adapters.

Ecosystems are registered by name in one flat registry; the ingestion engine
creates an adapter per configured ecosystem for every crawl cycle.
"""

import logging
import threading
from typing import Dict, List, Optional, Type

from modindex.core.exceptions import ConfigurationError
from modindex.core.interfaces import FetcherConfig
from modindex.fetcher.base import HttpClient, SourceAdapter


logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Registry of source adapter classes keyed by ecosystem name.
    """

    def __init__(self):
        """Initialize the adapter registry."""
        self._adapter_classes: Dict[str, Type[SourceAdapter]] = {}

    def register_adapter(self, name: str, adapter_class: Type[SourceAdapter]) -> None:
        """
        Register an adapter class.

        Args:
            name: Ecosystem name.
            adapter_class: Adapter class to register.
        """
        self._adapter_classes[name] = adapter_class
        logger.debug(f"Registered adapter: {name}")

    def create_adapter(
        self,
        name: str,
        config: Optional[FetcherConfig] = None,
        http: Optional[HttpClient] = None,
        cancel_event: Optional[threading.Event] = None,
        **kwargs
    ) -> SourceAdapter:
        """
        Create an adapter instance.

        Args:
            name: Ecosystem name.
            config: Configuration for fetching.
            http: Shared HTTP client.
            cancel_event: Event that requests cooperative shutdown.
            **kwargs: Additional arguments to pass to the adapter constructor.

        Returns:
            The adapter instance.

        Raises:
            ConfigurationError: If no adapter is registered under ``name``.
        """
        if name not in self._adapter_classes:
            raise ConfigurationError(
                f"unknown ecosystem: {name} (available: {', '.join(self.get_available_adapters())})"
            )

        adapter_class = self._adapter_classes[name]
        return adapter_class(config=config, http=http, cancel_event=cancel_event, **kwargs)

    def get_available_adapters(self) -> List[str]:
        """
        Get the registered ecosystem names in registration order.
        """
        return list(self._adapter_classes.keys())

    def is_adapter_available(self, name: str) -> bool:
        return name in self._adapter_classes

    def get_registered_adapters(self) -> Dict[str, Type[SourceAdapter]]:
        return self._adapter_classes.copy()


# Create a singleton instance
adapter_registry = AdapterRegistry()
