"""
Source adapter module for modindex.

This module provides the adapters that discover packages in each ecosystem and
fetch their raw facts.
"""

from modindex.fetcher.base import HttpClient, SourceAdapter
from modindex.fetcher.factory import AdapterRegistry, adapter_registry
from modindex.fetcher.github import GitHubClient
from modindex.fetcher.goproxy import GoProxyClient
from modindex.fetcher.levilamina import LeviLaminaAdapter
from modindex.fetcher.endstone_cpp import EndstoneCppAdapter
from modindex.fetcher.endstone_python import EndstonePythonAdapter
from modindex.fetcher.pypi import PyPIAdapter, PyPIClient

# Register adapters
adapter_registry.register_adapter("levilamina", LeviLaminaAdapter)
adapter_registry.register_adapter("endstone-cpp", EndstoneCppAdapter)
adapter_registry.register_adapter("endstone-python", EndstonePythonAdapter)
adapter_registry.register_adapter("pypi", PyPIAdapter)

__all__ = [
    "HttpClient",
    "SourceAdapter",
    "AdapterRegistry",
    "adapter_registry",
    "GitHubClient",
    "GoProxyClient",
    "LeviLaminaAdapter",
    "EndstoneCppAdapter",
    "EndstonePythonAdapter",
    "PyPIAdapter",
    "PyPIClient",
]
