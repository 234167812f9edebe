"""
Secondary indexes over hash documents stored in a ValkeyCollection

Documents live at ``{coll}:doc:<id>``. Each index kind maps a document to the
index keys it belongs to; building an index is guarded by a per-index build
marker so two concurrent builds of the same index fail fast with
IndexBuildAlreadyInProgress instead of interleaving.
"""
import re
from typing import Callable, Dict, Iterable, List

from ..errors import OperationError

INDEX_BUILD_IN_PROGRESS = "IndexBuildAlreadyInProgress"
PRIMARY_INDEX = "_id"
BUILD_MARKER_TTL_MS = 30000

_WORD = re.compile(r"[a-z]+")


def tokenize(text: str) -> List[str]:
    return sorted(set(_WORD.findall(text.lower())))


def _text_keys(coll, doc: Dict[str, str]) -> List[str]:
    return [coll.key("idx", "text", token) for token in tokenize(doc.get("text", ""))]


def _integer_keys(coll, doc: Dict[str, str]) -> List[str]:
    return [coll.key("idx", "integer", doc["integer"])] if "integer" in doc else []


def _wildcard_keys(coll, doc: Dict[str, str]) -> List[str]:
    return [coll.key("idx", "all", field, value) for field, value in sorted(doc.items())]


# index name -> document to set-index keys; the geo index is handled separately
SET_INDEXES: Dict[str, Callable] = {
    "text": _text_keys,
    "integer": _integer_keys,
    "$**": _wildcard_keys,
}
GEO_INDEX = "geo"
INDEX_NAMES = ("text", GEO_INDEX, "integer", "$**")


def catalog_key(coll) -> str:
    return coll.key("indexes")


def doc_key(coll, doc_id) -> str:
    return coll.key("doc", doc_id)


def load_documents(coll, doc_ids: Iterable[int]) -> Dict[int, Dict[str, str]]:
    pipe = coll.pipeline()
    ids = list(doc_ids)
    for doc_id in ids:
        pipe.hgetall(doc_key(coll, doc_id))
    return {doc_id: doc for doc_id, doc in zip(ids, pipe.execute()) if doc}


def index_keys(coll, name: str) -> List[str]:
    """Every key currently backing an index"""
    if name == GEO_INDEX:
        return [coll.key("idx", "geo")]
    prefix = {"text": "text", "integer": "integer", "$**": "all"}[name]
    return list(coll.client.scan_iter(match=coll.key("idx", prefix, "*"), count=500))


def build_index(coll, name: str, doc_ids: Iterable[int]) -> int:
    """
    Build (or rebuild) one index from scratch and register it in the catalog.

    Raises OperationError(IndexBuildAlreadyInProgress) when another build of
    the same index holds the marker. Returns the number of documents indexed.
    """
    marker = coll.key("build", name)
    if not coll.client.set(marker, "1", nx=True, px=BUILD_MARKER_TTL_MS):
        raise OperationError(INDEX_BUILD_IN_PROGRESS, f"index '{name}' on {coll.name} is being built")

    try:
        docs = load_documents(coll, doc_ids)
        stale = index_keys(coll, name)

        pipe = coll.pipeline()
        for key in stale:
            pipe.delete(key)
        if name == GEO_INDEX:
            for doc_id, doc in docs.items():
                pipe.geoadd(coll.key("idx", "geo"), (float(doc["lon"]), float(doc["lat"]), doc_id))
        else:
            keys_of = SET_INDEXES[name]
            for doc_id, doc in docs.items():
                for key in keys_of(coll, doc):
                    pipe.sadd(key, doc_id)
        pipe.sadd(catalog_key(coll), name)
        pipe.execute()
        return len(docs)
    finally:
        coll.client.delete(marker)


def registered_indexes(coll) -> List[str]:
    return sorted(coll.client.smembers(catalog_key(coll)))
