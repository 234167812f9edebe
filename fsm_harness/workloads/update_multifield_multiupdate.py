"""
update_multifield_multiupdate

Does updates that affect multiple fields on multiple documents.
Extends update_multifield: every update targets the whole collection.
"""
from dataclasses import replace

from ..fsm_engine.workload_loader import extend_workload
from ..models import WorkloadConfig
from .update_multifield import config as base_config, doc_key


def assert_result(ctx, res, coll, doc_ids):
    ctx.asserts.always.eq(0, res['n_upserted'], f"no upserts expected: {res}", result=res)

    # Each document is updated at most once per transaction
    ctx.asserts.when_own_coll.lte(ctx.data['num_docs'], res['n_matched'], f"{res}", result=res)
    ctx.asserts.always.gte(res['n_matched'], 0, f"{res}", result=res)
    ctx.asserts.when_own_coll.eq(res['n_matched'], res['n_modified'], f"{res}", result=res)

    def every_document_has_positive_z():
        pipe = coll.pipeline()
        for doc_id in range(ctx.data['num_docs']):
            pipe.hget(doc_key(coll, doc_id), 'z')
        for doc_id, z in enumerate(pipe.execute()):
            message = (f"query matched {doc_ids}, doc {doc_id} has z={z!r}; "
                       f"update response was {res}, multi={ctx.data['multi']}")
            ctx.asserts.when_own_coll.is_true(z is not None and z.lstrip('-').isdigit(), message, result=res)
            ctx.asserts.when_own_coll.gt(int(z), 0, message, result=res)

    ctx.asserts.when_own_coll(every_document_has_positive_z, "documents keep a positive z")


def _extend(config: WorkloadConfig, base: WorkloadConfig) -> WorkloadConfig:
    config.data['multi'] = True
    config.data['assert_result'] = assert_result
    return replace(config, name='update_multifield_multiupdate')


config = extend_workload(base_config, _extend)
