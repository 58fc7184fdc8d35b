"""Manifest bundle and load-test configuration loading.

A manifest bundle is a YAML file or a directory of YAML files holding:
- exactly one ClusterResourcePlacement document, the placement template
- any number of namespaced test resources (ConfigMap, Secret, ...)

Documents are classified by their ``kind`` field.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from fleetprobe.probe.errors import ConfigError
from fleetprobe.probe.placement import PLACEMENT_KIND

# Kinds that are treated as placement templates
PLACEMENT_KINDS = {PLACEMENT_KIND}


@dataclass
class ManifestBundle:
    """Placement template plus the auxiliary test resources."""

    path: str
    placement: Dict[str, Any]
    resources: List[Dict[str, Any]] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    @property
    def resource_kinds(self) -> List[str]:
        return [r.get("kind", "") for r in self.resources]


@dataclass
class LoadTestConfig:
    """Parameters of a load test."""

    bundle: Optional[str] = None
    concurrency: int = 10
    duration: float = 1200
    deadline: float = 300
    poll_interval: float = 5
    use_test_resources: bool = False
    cluster_names: List[str] = field(default_factory=list)
    expected_residual_resources: int = 2
    kubeconfig: Optional[str] = None
    context: Optional[str] = None

    # camelCase keys accepted in YAML config files
    FILE_KEYS = {
        "bundle": "bundle",
        "concurrency": "concurrency",
        "duration": "duration",
        "deadline": "deadline",
        "pollInterval": "poll_interval",
        "useTestResources": "use_test_resources",
        "clusterNames": "cluster_names",
        "expectedResidualResources": "expected_residual_resources",
        "kubeconfig": "kubeconfig",
        "context": "context",
    }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoadTestConfig":
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            attr = cls.FILE_KEYS.get(key, key)
            if attr in known:
                kwargs[attr] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialise using the camelCase file keys."""
        return {key: getattr(self, attr) for key, attr in self.FILE_KEYS.items()}


def load_bundle(bundle_path: str) -> ManifestBundle:
    """Load a manifest bundle from a directory or a single YAML file.

    Args:
        bundle_path: Path to a bundle directory or YAML file.

    Returns:
        The classified bundle.

    Raises:
        FileNotFoundError: If the path does not exist.
        ConfigError: If YAML is invalid or the bundle has no single
            placement template.
    """
    path = Path(bundle_path)

    if not path.exists():
        raise FileNotFoundError(f"Bundle path not found: {bundle_path}")

    if path.is_file():
        templates, resources = _load_yaml_file(path)
        files = [str(path.resolve())]
        bundle_dir = str(path.parent.resolve())
    elif path.is_dir():
        templates, resources, files = _load_yaml_directory(path)
        bundle_dir = str(path.resolve())
    else:
        raise ConfigError(f"Invalid bundle path: {bundle_path}")

    if not templates:
        raise ConfigError(
            f"No {PLACEMENT_KIND} found in {bundle_path}. "
            "A bundle must contain exactly one placement template."
        )
    if len(templates) > 1:
        sources = ", ".join(t["file"] for t in templates)
        raise ConfigError(
            f"Found {len(templates)} {PLACEMENT_KIND} documents in {bundle_path} ({sources}); "
            "a bundle must contain exactly one."
        )

    return ManifestBundle(
        path=bundle_dir,
        placement=templates[0]["spec"],
        resources=[r["spec"] for r in resources],
        files=files,
    )


def _load_yaml_file(filepath: Path) -> Tuple[List[Dict], List[Dict]]:
    """Load and classify YAML documents from a single file."""
    templates: List[Dict] = []
    resources: List[Dict] = []

    try:
        docs = list(yaml.safe_load_all(filepath.read_text()))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {filepath}: {e}")

    for doc in docs:
        if doc is None:
            continue
        if not isinstance(doc, dict):
            raise ConfigError(f"Expected a mapping in {filepath}, got {type(doc).__name__}")
        entry = {"file": str(filepath.resolve()), "spec": doc}
        if doc.get("kind") in PLACEMENT_KINDS:
            templates.append(entry)
        else:
            resources.append(entry)

    return templates, resources


def _load_yaml_directory(dirpath: Path) -> Tuple[List[Dict], List[Dict], List[str]]:
    """Load and classify all YAML files in a directory."""
    all_templates: List[Dict] = []
    all_resources: List[Dict] = []

    yaml_files = sorted(dirpath.glob("*.yaml")) + sorted(dirpath.glob("*.yml"))
    if not yaml_files:
        raise ConfigError(f"No YAML files found in {dirpath}")

    for filepath in yaml_files:
        t, r = _load_yaml_file(filepath)
        all_templates.extend(t)
        all_resources.extend(r)

    return all_templates, all_resources, [str(f.resolve()) for f in yaml_files]


def load_config(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> LoadTestConfig:
    """Build the load-test config from an optional YAML file and overrides.

    Args:
        config_path: YAML file with camelCase keys, or None.
        overrides: Values that win over the file (e.g. CLI options).
            ``None`` values are ignored.

    Raises:
        FileNotFoundError: If config_path does not exist.
        ConfigError: If the file is not a YAML mapping.
    """
    data: Dict[str, Any] = {}
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        try:
            loaded = yaml.safe_load(path.read_text())
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"Config file {config_path} must contain a mapping")
        data = {_file_key(k): v for k, v in (loaded or {}).items()}

    cleaned = {}
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        cleaned[_file_key(key)] = value

    return LoadTestConfig.from_dict(merge_configs(data, cleaned))


def _file_key(attr: str) -> str:
    for key, name in LoadTestConfig.FILE_KEYS.items():
        if name == attr:
            return key
    return attr


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge multiple configuration dictionaries.

    Later configs override earlier ones for conflicting keys.
    """
    result: Dict[str, Any] = {}
    for config in configs:
        result = _deep_merge(result, config)
    return result


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
