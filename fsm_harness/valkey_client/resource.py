"""
Valkey resource provider - Collection handles backed by a Valkey key space
"""
import logging
from typing import Dict, Optional

from ..interfaces import IResourceProvider
from ..models import ValkeyConfig
from ..utils.valkey_utils import create_client, delete_matching

logger = logging.getLogger(__name__)


class ValkeyCollection:
    """
    A named group of keys playing the role of a collection.

    Every key is prefixed with the ``{name}`` hash tag, so the whole collection
    lives in one cluster slot and can be used in pipelines and MULTI/EXEC.
    """

    def __init__(self, client, name: str):
        self.client = client
        self.name = name

    def key(self, *parts) -> str:
        return ":".join([f"{{{self.name}}}", *(str(p) for p in parts)])

    @property
    def pattern(self) -> str:
        return f"{{{self.name}}}:*"

    def pipeline(self, transaction: bool = False):
        return self.client.pipeline(transaction=transaction)

    def __repr__(self) -> str:
        return f"ValkeyCollection({self.name!r})"


class ValkeyResourceProvider(IResourceProvider):
    """Hands out collection handles sharing one pooled client"""

    def __init__(self, config: Optional[ValkeyConfig] = None, client=None):
        self.config = config or ValkeyConfig()
        self._client = client
        self.handles: Dict[str, ValkeyCollection] = {}

    @property
    def client(self):
        if self._client is None:
            self._client = create_client(self.config)
            logger.info(f"Connected to Valkey at {self.config.host}:{self.config.port}"
                        f"{' (cluster)' if self.config.cluster else ''}")
        return self._client

    def acquire(self, name: str) -> ValkeyCollection:
        if name not in self.handles:
            self.client.ping()
            self.handles[name] = ValkeyCollection(self.client, name)
        return self.handles[name]

    def drop(self, handle: ValkeyCollection) -> None:
        deleted = delete_matching(handle.client, handle.pattern)
        logger.debug(f"Dropped collection {handle.name} ({deleted} keys)")

    def close(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            finally:
                self._client = None
                self.handles.clear()
