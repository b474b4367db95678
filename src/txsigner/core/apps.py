"""
Application registry.

Maps contract addresses to the installed applications they belong to,
so a direct transaction can be described by its target app's name.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import structlog

from txsigner.core.types import addresses_equal

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Application:
    """An installed application, addressed by its proxy contract."""

    name: str
    proxy_address: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Application":
        return cls(name=data.get("name") or "", proxy_address=data["proxyAddress"])


class ApplicationRegistry:
    """
    Registry of known applications.

    Lookups compare addresses case-insensitively, so checksummed and
    lowercase forms of an address resolve to the same application.
    """

    def __init__(self, apps: Optional[Iterable[Application]] = None):
        self._apps: List[Application] = list(apps or [])

    @classmethod
    def from_file(cls, path: str) -> "ApplicationRegistry":
        """
        Load a registry from a JSON file.

        The file holds a list of ``{"name": ..., "proxyAddress": ...}`` objects.

        Args:
            path: Path to the JSON file

        Returns:
            Loaded registry
        """
        file_path = Path(path)
        if not file_path.exists():
            raise FileNotFoundError(f"Application registry not found: {path}")

        entries = json.loads(file_path.read_text(encoding="utf-8"))
        registry = cls(Application.from_dict(entry) for entry in entries)
        logger.info("registry_loaded", path=path, apps=len(registry))
        return registry

    def register(self, app: Application) -> None:
        self._apps.append(app)

    def lookup(self, address: Optional[str]) -> Optional[Application]:
        """
        Find the application whose proxy lives at an address.

        Args:
            address: Contract address to look up

        Returns:
            The matching application, or None if unknown
        """
        for app in self._apps:
            if addresses_equal(app.proxy_address, address):
                return app
        return None

    def __len__(self) -> int:
        return len(self._apps)
