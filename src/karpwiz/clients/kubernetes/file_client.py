# src/karpwiz/clients/kubernetes/file_client.py
"""File-backed inventory client for offline analysis and demos."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from karpwiz.core.base_client import BaseClient
from karpwiz.core.exceptions import UpstreamUnavailableException
from karpwiz.models.inventory import NodeInventorySnapshot, PodInventorySnapshot


class FileInventoryClient(BaseClient):
    """Reads `{nodes: [...], pods: [...]}` from a JSON or YAML file.

    The file is re-read on every fetch so edits show up without a restart.
    Node and pod entries use the same camelCase fields as the API.
    """

    provider = "inventory file"

    def __init__(self, config_dict: Dict[str, Any], path: Optional[str] = None):
        super().__init__(config_dict, "FileInventoryClient")
        self.path = Path(path) if path else None

    async def connect(self) -> None:
        if self.path is None:
            raise UpstreamUnavailableException(self.provider, "No inventory file configured")
        if not self.path.exists():
            raise UpstreamUnavailableException(self.provider, f"{self.path} does not exist")
        self._connected = True
        self.logger.info("Inventory file attached", path=str(self.path))

    async def disconnect(self) -> None:
        self._connected = False

    async def health_check(self) -> bool:
        return self._connected and self.path is not None and self.path.exists()

    async def fetch_inventory(self) -> NodeInventorySnapshot:
        data = self._read()
        try:
            snapshot = NodeInventorySnapshot(nodes=data.get("nodes") or [])
        except ValidationError as e:
            raise UpstreamUnavailableException(self.provider, f"Invalid node data in {self.path}: {e}")
        self.logger.info("Loaded node inventory from file", total_nodes=snapshot.total_nodes)
        return snapshot

    async def fetch_pods(self) -> PodInventorySnapshot:
        data = self._read()
        try:
            snapshot = PodInventorySnapshot.from_pods(
                PodInventorySnapshot(pods=data.get("pods") or []).pods
            )
        except ValidationError as e:
            raise UpstreamUnavailableException(self.provider, f"Invalid pod data in {self.path}: {e}")
        self.logger.info("Loaded pod inventory from file", total_pods=snapshot.total_pods)
        return snapshot

    def _read(self) -> Dict[str, Any]:
        self._require_connection()
        try:
            text = self.path.read_text(encoding="utf-8")
            if self.path.suffix == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise UpstreamUnavailableException(self.provider, f"Cannot read {self.path}: {e}")
        if not isinstance(data, dict):
            raise UpstreamUnavailableException(self.provider, f"{self.path} must contain a mapping")
        return data
