"""
Tests for workload resolution, workload extension and harness configuration loading
"""
import json
import pytest
from dataclasses import replace

from fsm_harness.errors import ConfigError
from fsm_harness.models import HarnessConfig, ResourceSharing, WorkloadConfig
from fsm_harness.fsm_engine.workload_loader import (
    WorkloadLoader, extend_workload, load_harness_config, harness_config_from_dict
)


class TestWorkloadLoader:

    def test_available_lists_builtins(self):
        assert set(WorkloadLoader.available()) == {
            'reindex', 'update_multifield', 'update_multifield_multiupdate'
        }

    def test_load_builtin(self):
        workload = WorkloadLoader.load('reindex')

        assert isinstance(workload, WorkloadConfig)
        assert workload.name == 'reindex'

    def test_load_module_reference(self):
        workload = WorkloadLoader.load('fsm_harness.workloads.update_multifield:config')

        assert workload.name == 'update_multifield'

    def test_load_module_without_attribute_uses_config(self):
        assert WorkloadLoader.load('fsm_harness.workloads.reindex').name == 'reindex'

    def test_load_passes_through_workload(self, make_workload):
        workload = make_workload()

        assert WorkloadLoader.load(workload) is workload

    def test_load_unknown_module(self):
        with pytest.raises(ConfigError, match="Cannot import"):
            WorkloadLoader.load('no_such_package.workloads:config')

    def test_load_missing_attribute(self):
        with pytest.raises(ConfigError, match="has no attribute"):
            WorkloadLoader.load('fsm_harness.workloads.reindex:missing')

    def test_load_non_workload_attribute(self):
        with pytest.raises(ConfigError, match="not a WorkloadConfig"):
            WorkloadLoader.load('fsm_harness.workloads.reindex:data')

    def test_apply_overrides(self, make_workload):
        workload = make_workload()
        config = HarnessConfig(thread_count=7, resource_sharing=ResourceSharing.SHARED)

        overridden = WorkloadLoader.apply_overrides(workload, config)

        assert overridden.thread_count == 7
        assert overridden.iterations == workload.iterations
        assert overridden.resource_sharing == ResourceSharing.SHARED
        assert workload.thread_count == 2

    def test_apply_no_overrides(self, make_workload):
        workload = make_workload()

        assert WorkloadLoader.apply_overrides(workload, HarnessConfig()) is workload


class TestExtendWorkload:

    def test_extension_does_not_touch_base(self, make_workload):
        """Test the extender works on a copy of the base"""
        base = make_workload(data={'multi': False, 'docs': [1, 2]})

        def extender(config, parent):
            assert parent is base
            config.data['multi'] = True
            config.data['docs'].append(3)
            return replace(config, name='derived', iterations=20)

        derived = extend_workload(base, extender)

        assert derived.name == 'derived'
        assert derived.iterations == 20
        assert derived.data == {'multi': True, 'docs': [1, 2, 3]}
        assert base.data == {'multi': False, 'docs': [1, 2]}
        assert base.name == 'test_workload'

    def test_extender_must_return_workload(self, make_workload):
        with pytest.raises(ConfigError, match="must return a WorkloadConfig"):
            extend_workload(make_workload(), lambda config, base: None)

    def test_bundled_multiupdate_extends_base(self):
        base = WorkloadLoader.load('update_multifield')
        derived = WorkloadLoader.load('update_multifield_multiupdate')

        assert base.data['multi'] is False
        assert derived.data['multi'] is True
        assert derived.data['assert_result'] is not base.data['assert_result']
        assert derived.transitions == base.transitions


class TestHarnessConfigLoading:

    def test_load_yaml(self, tmp_path):
        config_file = tmp_path / "harness.yaml"
        config_file.write_text(
            "seed: 42\n"
            "fail_fast: true\n"
            "resource_sharing: shared\n"
            "valkey:\n"
            "  host: 10.0.0.5\n"
            "  port: 7000\n"
            "  cluster: true\n"
            "retry:\n"
            "  max_attempts: 5\n"
        )

        config = load_harness_config(config_file)

        assert config.seed == 42
        assert config.fail_fast is True
        assert config.resource_sharing == ResourceSharing.SHARED
        assert config.valkey.host == '10.0.0.5'
        assert config.valkey.port == 7000
        assert config.valkey.cluster is True
        assert config.retry.max_attempts == 5
        assert config.cleanup is True

    def test_load_json(self, tmp_path):
        config_file = tmp_path / "harness.json"
        config_file.write_text(json.dumps({'iterations': 3, 'sync_iterations': True}))

        config = load_harness_config(str(config_file))

        assert config.iterations == 3
        assert config.sync_iterations is True

    def test_empty_yaml_gives_defaults(self, tmp_path):
        config_file = tmp_path / "empty.yml"
        config_file.write_text("")

        assert load_harness_config(config_file) == HarnessConfig()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_harness_config(tmp_path / "missing.yaml")

    def test_unsupported_format(self, tmp_path):
        config_file = tmp_path / "harness.txt"
        config_file.write_text("seed: 1")

        with pytest.raises(ConfigError, match="Unsupported config format"):
            load_harness_config(config_file)

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "bad.yaml"
        config_file.write_text("seed: [1, 2\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_harness_config(config_file)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ConfigError, match="threads"):
            harness_config_from_dict({'threads': 4})

    def test_unknown_section_keys_rejected(self):
        with pytest.raises(ConfigError, match="valkey"):
            harness_config_from_dict({'valkey': {'hostname': 'x'}})

    def test_invalid_sharing(self):
        with pytest.raises(ConfigError, match="resource_sharing"):
            harness_config_from_dict({'resource_sharing': 'sometimes'})

    def test_base_config_not_mutated(self):
        base = HarnessConfig(seed=1)

        config = harness_config_from_dict({'seed': 2}, base=base)

        assert config.seed == 2
        assert base.seed == 1
