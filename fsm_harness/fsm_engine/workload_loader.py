"""
Workload Loader - Resolving workload definitions and loading harness configuration
"""
import json
import importlib
import yaml
from copy import deepcopy
from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

from ..errors import ConfigError
from ..models import HarnessConfig, ResourceSharing, RetryConfig, ValkeyConfig, WorkloadConfig

BUILTIN_WORKLOADS = {
    'reindex': 'fsm_harness.workloads.reindex:config',
    'update_multifield': 'fsm_harness.workloads.update_multifield:config',
    'update_multifield_multiupdate': 'fsm_harness.workloads.update_multifield_multiupdate:config',
}


def extend_workload(base: WorkloadConfig,
                    extender: Callable[[WorkloadConfig, WorkloadConfig], WorkloadConfig]) -> WorkloadConfig:
    """
    Derive a workload from `base`.

    The extender receives a deep copy of the base (so mutating its `data` or
    replacing fields never affects the base) plus the base itself, and returns
    the derived workload.
    """
    derived = extender(deepcopy(base), base)
    if not isinstance(derived, WorkloadConfig):
        raise ConfigError(f"Extender of '{base.name}' must return a WorkloadConfig, got {type(derived).__name__}")
    return derived


class WorkloadLoader:
    """Utility class for resolving workload references"""

    @staticmethod
    def available() -> Dict[str, str]:
        return dict(BUILTIN_WORKLOADS)

    @staticmethod
    def load(reference: Union[str, WorkloadConfig]) -> WorkloadConfig:
        """
        Resolve a built-in workload name or a ``package.module:attribute`` reference.
        The attribute may be a WorkloadConfig or a zero-argument callable returning one.
        """
        if isinstance(reference, WorkloadConfig):
            return reference

        target = BUILTIN_WORKLOADS.get(reference, reference)
        module_name, sep, attr = target.partition(':')
        if not sep:
            attr = 'config'

        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ConfigError(f"Cannot import workload module '{module_name}': {e}")

        obj = getattr(module, attr, None)
        if obj is None:
            raise ConfigError(f"Workload module '{module_name}' has no attribute '{attr}'")
        if callable(obj) and not isinstance(obj, WorkloadConfig):
            obj = obj()
        if not isinstance(obj, WorkloadConfig):
            raise ConfigError(f"'{target}' is not a WorkloadConfig (got {type(obj).__name__})")
        return obj

    @staticmethod
    def apply_overrides(workload: WorkloadConfig, config: HarnessConfig) -> WorkloadConfig:
        """Apply run-level overrides from the harness configuration"""
        overrides: Dict[str, Any] = {}
        if config.thread_count is not None:
            overrides['thread_count'] = config.thread_count
        if config.iterations is not None:
            overrides['iterations'] = config.iterations
        if config.resource_sharing is not None:
            overrides['resource_sharing'] = config.resource_sharing
        return replace(workload, **overrides) if overrides else workload


def load_harness_config(path: Union[str, Path]) -> HarnessConfig:
    """Load harness configuration from a YAML or JSON file"""
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, 'r') as f:
        if path.suffix in ['.yaml', '.yml']:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML syntax in {path}: {e}")
        elif path.suffix == '.json':
            try:
                raw = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {path}: {e}")
        else:
            raise ConfigError(f"Unsupported config format: {path.suffix}")

    return harness_config_from_dict(raw or {})


def harness_config_from_dict(raw: Dict[str, Any], base: Optional[HarnessConfig] = None) -> HarnessConfig:
    """Build a HarnessConfig from a plain dictionary; unknown keys are rejected"""
    if not isinstance(raw, dict):
        raise ConfigError(f"Harness configuration must be a mapping, got {type(raw).__name__}")

    config = deepcopy(base) if base else HarnessConfig()
    known = {f.name for f in fields(HarnessConfig)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"Unknown harness configuration keys: {sorted(unknown)}")

    for key, value in raw.items():
        if key == 'valkey':
            value = _sub_config(ValkeyConfig, value, 'valkey')
        elif key == 'retry':
            value = _sub_config(RetryConfig, value, 'retry')
        elif key == 'resource_sharing' and value is not None:
            try:
                value = ResourceSharing(value)
            except ValueError:
                raise ConfigError(f"Invalid resource_sharing '{value}', expected 'exclusive' or 'shared'")
        setattr(config, key, value)

    return config


def _sub_config(cls, raw: Any, section: str):
    if not isinstance(raw, dict):
        raise ConfigError(f"'{section}' section must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ConfigError(f"Unknown keys in '{section}' section: {sorted(unknown)}")
    return cls(**raw)
