"""
update_multifield

Does updates that affect multiple fields on a single document. Every field has
its own sorted-set index, kept in step with the documents inside the same
optimistic transaction. All workers share one collection, so concurrent
updates of the same document surface as WriteConflict and are tolerated.
"""
from typing import Any, Dict, List

from valkey.exceptions import WatchError

from ..errors import OperationError
from ..models import WorkloadConfig, ResourceSharing

WRITE_CONFLICT = "WriteConflict"
FIELDS = ('x', 'y', 'z')


def doc_key(coll, doc_id) -> str:
    return coll.key("doc", doc_id)


def field_index_key(coll, field: str) -> str:
    return coll.key("idx", field)


def assert_result(ctx, res: Dict[str, int], coll, doc_ids: List[int]):
    ctx.asserts.always.eq(0, res['n_upserted'], f"no upserts expected: {res}", result=res)
    # Without multi only one document can match the query
    ctx.asserts.when_own_coll.eq(1, res['n_matched'], f"one document matched: {res}", result=res)
    ctx.asserts.when_own_coll.eq(res['n_matched'], res['n_modified'], f"matched == modified: {res}", result=res)


data = {
    'num_docs': 10,
    'multi': False,
    'assert_result': assert_result,
}


def setup(coll, workload_data):
    pipe = coll.pipeline()
    for field in FIELDS:
        pipe.delete(field_index_key(coll, field))
    for doc_id in range(workload_data['num_docs']):
        pipe.hset(doc_key(coll, doc_id), mapping={'x': 0, 'y': 0, 'z': 1})
        for field, value in (('x', 0), ('y', 0), ('z', 1)):
            pipe.zadd(field_index_key(coll, field), {doc_id: value})
    pipe.execute()


def make_query(ctx) -> List[int]:
    """Document ids the update applies to"""
    if ctx.data['multi']:
        return list(range(ctx.data['num_docs']))
    return [ctx.rng.randrange(ctx.data['num_docs'])]


def make_update(ctx) -> Dict[str, int]:
    return {
        'x': ctx.rng.randint(0, 4),
        'y': ctx.rng.randint(0, 4),
        'z': ctx.rng.randint(1, 5),  # increment; keeps z positive
    }


def apply_update(coll, doc_ids: List[int], update: Dict[str, int]) -> Dict[str, Any]:
    """Set x and y, increment z on every document and its indexes in one transaction"""
    keys = [doc_key(coll, doc_id) for doc_id in doc_ids]
    pipe = coll.pipeline(transaction=True)
    try:
        pipe.watch(*keys)
        current = {doc_id: pipe.hgetall(key) for doc_id, key in zip(doc_ids, keys)}
        matched = [doc_id for doc_id, doc in current.items() if doc]

        pipe.multi()
        for doc_id in matched:
            key = doc_key(coll, doc_id)
            z = int(current[doc_id]['z']) + update['z']
            pipe.hset(key, mapping={'x': update['x'], 'y': update['y'], 'z': z})
            pipe.zadd(field_index_key(coll, 'x'), {doc_id: update['x']})
            pipe.zadd(field_index_key(coll, 'y'), {doc_id: update['y']})
            pipe.zadd(field_index_key(coll, 'z'), {doc_id: z})
        pipe.execute()
    except WatchError as e:
        raise OperationError(WRITE_CONFLICT, f"documents {doc_ids} changed during update", result=update) from e
    finally:
        pipe.reset()

    return {'n_matched': len(matched), 'n_modified': len(matched), 'n_upserted': 0}


def update(coll, ctx):
    doc_ids = make_query(ctx)
    res = apply_update(coll, doc_ids, make_update(ctx))
    ctx.data['assert_result'](ctx, res, coll, doc_ids)


config = WorkloadConfig(
    name='update_multifield',
    thread_count=10,
    iterations=10,
    data=data,
    start_state='update',
    states={'update': update},
    transitions={'update': {'update': 1}},
    resource_sharing=ResourceSharing.SHARED,
    tolerated_codes={WRITE_CONFLICT},
    setup=setup,
)
