"""
Valkey client utilities for connection management and key-space helpers
"""
import logging
import valkey
from valkey.cluster import ClusterNode
from typing import Iterator, List
from contextlib import contextmanager

from ..models import ValkeyConfig

logger = logging.getLogger(__name__)


def create_client(config: ValkeyConfig):
    """Create a standalone or cluster client; clients are thread-safe and pool connections"""
    if config.cluster:
        return valkey.ValkeyCluster(
            startup_nodes=[ClusterNode(host=config.host, port=config.port)],
            password=config.password,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_timeout,
            decode_responses=True,
        )
    return valkey.Valkey(
        host=config.host,
        port=config.port,
        db=config.db,
        password=config.password,
        socket_timeout=config.socket_timeout,
        socket_connect_timeout=config.socket_timeout,
        decode_responses=True,
    )


@contextmanager
def valkey_client(host: str, port: int, timeout: float, decode_responses: bool = True):
    client = None
    try:
        client = valkey.Valkey(
            host=host,
            port=port,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=decode_responses
        )
        yield client
    finally:
        if client is not None:
            try:
                client.close()
            except Exception as e:
                logger.debug(f"Error closing client for {host}:{port}: {e}")


def is_node_alive(host: str, port: int, timeout: float = 2.0) -> bool:
    try:
        with valkey_client(host, port, timeout, decode_responses=True) as client:
            client.ping()
            return True
    except Exception:
        return False


def scan_keys(client, pattern: str, count: int = 500) -> Iterator[str]:
    """Iterate keys matching a pattern without blocking the server"""
    yield from client.scan_iter(match=pattern, count=count)


def delete_matching(client, pattern: str, batch_size: int = 500) -> int:
    """Delete every key matching `pattern`; returns how many keys were removed"""
    deleted = 0
    batch: List[str] = []
    for key in scan_keys(client, pattern, count=batch_size):
        batch.append(key)
        if len(batch) >= batch_size:
            deleted += _unlink(client, batch)
            batch = []
    if batch:
        deleted += _unlink(client, batch)
    return deleted


def _unlink(client, keys: List[str]) -> int:
    # One key per call keeps cluster mode happy when keys span slots
    return sum(client.unlink(key) for key in keys)
