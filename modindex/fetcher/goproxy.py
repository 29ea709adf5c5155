"""
Go module proxy client.

lip packages are Go-style modules (``github.com/owner/repo``), so the module
proxy knows every version tag of a repository and when it was created, with or
without a GitHub release.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from modindex.fetcher.base import HttpClient


logger = logging.getLogger(__name__)

GOPROXY_BASE_URL = "https://goproxy.io"


def escape_module_path(path: str) -> str:
    """Escape a module path or version the way the proxy expects: ``A`` becomes ``!a``."""
    return re.sub(r"[A-Z]", lambda match: "!" + match.group(0).lower(), path)


class GoProxyClient:
    """Reads version lists and version info from a Go module proxy."""

    def __init__(self, http: HttpClient, base_url: str = GOPROXY_BASE_URL):
        self.http = http
        self.base_url = base_url.rstrip("/")

    def module_url(self, owner: str, repo: str) -> str:
        return f"{self.base_url}/{escape_module_path(f'github.com/{owner}/{repo}')}"

    def list_versions(self, owner: str, repo: str) -> List[str]:
        """Version tags known for ``github.com/{owner}/{repo}``, empty if the module is unknown."""
        text = self.http.get_optional_text(f"{self.module_url(owner, repo)}/@v/list")
        if text is None:
            logger.debug(f"Module proxy has no versions for {owner}/{repo}")
            return []
        return [line.strip() for line in text.splitlines() if line.strip()]

    def get_version_info(self, owner: str, repo: str, version: str) -> Optional[Dict[str, Any]]:
        """The ``{"Version", "Time"}`` document of one version, or None if unknown."""
        return self.http.get_optional_json(
            f"{self.module_url(owner, repo)}/@v/{escape_module_path(version)}.info"
        )
