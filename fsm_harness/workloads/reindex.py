"""
reindex

Bulk inserts 1000 documents and builds text, geo, integer and wildcard indexes,
then alternates between rebuilding the indexes and querying through them.
Each worker operates on its own collection.
"""
from ..models import WorkloadConfig, ResourceSharing
from .indexes import (
    INDEX_BUILD_IN_PROGRESS, INDEX_NAMES, PRIMARY_INDEX,
    build_index, catalog_key, doc_key, registered_indexes
)

LOREM = ("Lorem ipsum dolor sit amet, consectetur adipiscing elit, sed do"
         " eiusmod tempor incididunt ut labore et dolore magna aliqua.")

data = {
    'n_indexes': len(INDEX_NAMES) + 1,  # 4 created and 1 for _id
    'n_documents': 1000,
    'max_integer': 100,  # must be a factor of n_documents
    # Box around (0, 0) wide enough to contain every inserted point
    'geo_box_km': 6000,
}


def insert_documents(coll, ctx):
    n_documents = ctx.data['n_documents']
    pipe = coll.pipeline()
    for i in range(n_documents):
        pipe.hset(doc_key(coll, i), mapping={
            'text': LOREM,
            'lon': (i % 50) - 25,
            'lat': (i % 50) - 25,
            'integer': i % ctx.data['max_integer'],
        })
    pipe.sadd(catalog_key(coll), PRIMARY_INDEX)
    res = pipe.execute(raise_on_error=False)

    failed = [r for r in res if isinstance(r, Exception)]
    ctx.asserts.always.eq([], failed, "insert commands failed", result=res)
    inserted = coll.client.exists(*(doc_key(coll, i) for i in range(n_documents)))
    ctx.asserts.always.eq(n_documents, inserted, "documents inserted", result=res)


def init(coll, ctx):
    insert_documents(coll, ctx)


def create_indexes(coll, ctx):
    # The number of indexes created here is also stored in data['n_indexes']
    for name in INDEX_NAMES:
        build_index(coll, name, range(ctx.data['n_documents']))


def query(coll, ctx):
    n_documents = ctx.data['n_documents']
    max_integer = ctx.data['max_integer']
    client = coll.client

    value = ctx.rng.randrange(max_integer)
    count = client.scard(coll.key("idx", "integer", value))
    ctx.asserts.when_own_coll.eq(
        n_documents // max_integer, count,
        "number of documents returned by integer query should match the number inserted"
    )

    # Geo and text lookups only make sense when the indexes are known to exist
    def geo_and_text():
        box = ctx.data['geo_box_km']
        found = client.geosearch(coll.key("idx", "geo"), longitude=0, latitude=0,
                                 width=box, height=box, unit='km')
        ctx.asserts.when_own_coll.eq(
            len(found), n_documents,
            "number of documents returned by geospatial query should match number inserted"
        )

        matched = client.scard(coll.key("idx", "text", "ipsum"))
        ctx.asserts.when_own_coll.eq(
            matched, n_documents,
            "number of documents returned by text query should match number inserted"
        )

    ctx.asserts.when_own_coll(geo_and_text, "geo and text queries")

    ctx.asserts.when_own_coll.eq(len(registered_indexes(coll)), ctx.data['n_indexes'], "index count")


def re_index(coll, ctx):
    n_documents = ctx.data['n_documents']
    for name in registered_indexes(coll):
        if name == PRIMARY_INDEX:
            continue
        indexed = build_index(coll, name, range(n_documents))
        ctx.asserts.always.eq(n_documents, indexed, f"documents covered by rebuilt index '{name}'")


config = WorkloadConfig(
    name='reindex',
    thread_count=15,
    iterations=10,
    data=data,
    states={
        'init': init,
        'createIndexes': create_indexes,
        'reIndex': re_index,
        'query': query,
    },
    transitions={
        'init': {'createIndexes': 1},
        'createIndexes': {'reIndex': 0.5, 'query': 0.5},
        'reIndex': {'reIndex': 0.5, 'query': 0.5},
        'query': {'reIndex': 0.5, 'query': 0.5},
    },
    resource_sharing=ResourceSharing.EXCLUSIVE,
    tolerated_errors={
        'createIndexes': {INDEX_BUILD_IN_PROGRESS},
        'reIndex': {INDEX_BUILD_IN_PROGRESS},
    },
)
