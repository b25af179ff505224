"""
QuickMock Config Stores

Key-value persistence for MockServerConfig, keyed by server id.

Writes are whole-document replaces (last writer wins); nothing here is
transactional.
"""

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Dict, Optional, Union

from ..common import get_data_dir_from_env
from .errors import ConfigError
from .models import MockServerConfig, now_ms

logger = logging.getLogger("quickmock.config_store")


class ConfigStore(ABC):
    """Persistence interface the instance manager depends on."""

    @abstractmethod
    def get(self, server_id: str) -> Optional[MockServerConfig]:
        """Load a config, or None if the id is unknown."""

    @abstractmethod
    def save(self, config: MockServerConfig) -> MockServerConfig:
        """Persist a config, stamping ``updated_at``; returns the stored config."""

    @abstractmethod
    def delete(self, server_id: str) -> bool:
        """Remove a config; False if it did not exist."""

    @abstractmethod
    def list(self) -> List[MockServerConfig]:
        """All configs, most recently updated first."""


class InMemoryConfigStore(ConfigStore):
    """Process-local store, used by ``quickmock serve`` and tests."""

    def __init__(self):
        self._configs: Dict[str, Dict] = {}

    def get(self, server_id: str) -> Optional[MockServerConfig]:
        data = self._configs.get(server_id)
        return MockServerConfig.from_dict(copy.deepcopy(data)) if data is not None else None

    def save(self, config: MockServerConfig) -> MockServerConfig:
        config.updated_at = now_ms()
        # Store a serialized copy so callers cannot mutate persisted state
        self._configs[config.id] = copy.deepcopy(config.to_dict())
        return config

    def delete(self, server_id: str) -> bool:
        return self._configs.pop(server_id, None) is not None

    def list(self) -> List[MockServerConfig]:
        configs = [MockServerConfig.from_dict(copy.deepcopy(data)) for data in self._configs.values()]
        return sorted(configs, key=lambda c: c.updated_at, reverse=True)


class FileConfigStore(ConfigStore):
    """
    One JSON file per server under ``<data_dir>/servers/<id>.json``.

    Example:
        store = FileConfigStore()            # uses QUICKMOCK_DATA_DIR or .quickmock
        store.save(create_default_config(port=4000))
        for config in store.list():
            print(config.id, config.name)
    """

    def __init__(self, data_dir: Optional[Union[str, Path]] = None):
        """
        Initialize file config store.

        Args:
            data_dir: Base data directory (defaults to QUICKMOCK_DATA_DIR)
        """
        self.data_dir = Path(data_dir) if data_dir else get_data_dir_from_env()
        self.servers_dir = self.data_dir / 'servers'

    def _path(self, server_id: str) -> Path:
        if not server_id or '/' in server_id or '\\' in server_id or server_id.startswith('.'):
            raise ConfigError(f"Invalid server id: {server_id!r}")
        return self.servers_dir / f"{server_id}.json"

    def _read(self, path: Path) -> MockServerConfig:
        with open(path, 'r', encoding='utf-8') as f:
            return MockServerConfig.from_dict(json.load(f))

    def get(self, server_id: str) -> Optional[MockServerConfig]:
        path = self._path(server_id)
        if not path.exists():
            return None
        return self._read(path)

    def save(self, config: MockServerConfig) -> MockServerConfig:
        path = self._path(config.id)
        self.servers_dir.mkdir(parents=True, exist_ok=True)
        config.updated_at = now_ms()

        # Write beside the target then rename, so readers never see a partial file
        fd, tmp_name = tempfile.mkstemp(dir=self.servers_dir, prefix=f".{config.id}.", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(config.to_dict(), f, indent=2)
                f.write('\n')
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.debug(f"Saved server config {config.id} to {path}")
        return config

    def delete(self, server_id: str) -> bool:
        path = self._path(server_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def list(self) -> List[MockServerConfig]:
        if not self.servers_dir.is_dir():
            return []

        configs = []
        for path in self.servers_dir.glob('*.json'):
            try:
                configs.append(self._read(path))
            except (OSError, json.JSONDecodeError, ConfigError) as e:
                logger.warning(f"Skipping unreadable server config {path}: {e}")

        return sorted(configs, key=lambda c: c.updated_at, reverse=True)
