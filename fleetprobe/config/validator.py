"""Schema validation for manifest bundles and load-test configs."""

from typing import Any, Dict, List, Optional

import jsonschema

from fleetprobe.config.loader import ManifestBundle
from fleetprobe.probe.errors import ConfigError
from fleetprobe.probe.placement import PLACEMENT_GROUP, PLACEMENT_KIND
from fleetprobe.provisioner.kubernetes import SUPPORTED_KINDS

# JSON Schema for the placement template of a bundle
PLACEMENT_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["kind", "spec"],
    "properties": {
        "apiVersion": {
            "type": "string",
            "pattern": "^placement\\.kubernetes-fleet\\.io/v\\d+.*$"
        },
        "kind": {
            "type": "string",
            "enum": [PLACEMENT_KIND]
        },
        "metadata": {"type": "object"},
        "spec": {
            "type": "object",
            "properties": {
                "resourceSelectors": {
                    "type": "array",
                    "items": {"$ref": "#/$defs/resourceSelector"}
                },
                "policy": {
                    "type": "object",
                    "properties": {
                        "placementType": {
                            "type": "string",
                            "enum": ["PickAll", "PickN", "PickFixed"]
                        },
                        "numberOfClusters": {"type": "integer", "minimum": 0},
                        "clusterNames": {
                            "type": "array",
                            "items": {"type": "string"}
                        },
                        "affinity": {"type": "object"}
                    }
                },
                "strategy": {"type": "object"},
                "revisionHistoryLimit": {"type": "integer"}
            }
        }
    },
    "$defs": {
        "resourceSelector": {
            "type": "object",
            "required": ["group", "version", "kind"],
            "properties": {
                "group": {"type": "string"},
                "version": {"type": "string", "minLength": 1},
                "kind": {"type": "string", "minLength": 1},
                "name": {"type": "string"},
                "labelSelector": {"type": "object"}
            }
        }
    }
}

# JSON Schema for each auxiliary test resource
TEST_RESOURCE_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["apiVersion", "kind", "metadata"],
    "properties": {
        "apiVersion": {"type": "string", "minLength": 1},
        "kind": {"type": "string", "enum": list(SUPPORTED_KINDS)},
        "metadata": {
            "type": "object",
            "required": ["name"],
            "properties": {
                "name": {"type": "string", "minLength": 1},
                "namespace": {"type": "string"}
            }
        }
    }
}

# JSON Schema for load-test config files (camelCase keys)
LOADTEST_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "bundle": {"type": ["string", "null"]},
        "concurrency": {"type": "integer", "minimum": 1},
        "duration": {"type": "number", "exclusiveMinimum": 0},
        "deadline": {"type": "number", "exclusiveMinimum": 0},
        "pollInterval": {"type": "number", "exclusiveMinimum": 0},
        "useTestResources": {"type": "boolean"},
        "clusterNames": {
            "type": "array",
            "items": {"type": "string", "minLength": 1}
        },
        "expectedResidualResources": {"type": "integer", "minimum": 0},
        "kubeconfig": {"type": ["string", "null"]},
        "context": {"type": ["string", "null"]}
    },
    "additionalProperties": False
}


class ValidationError(ConfigError):
    """Exception raised when bundle or config validation fails."""


def validate_bundle(bundle: ManifestBundle, use_test_resources: Optional[bool] = None) -> bool:
    """Validate a manifest bundle.

    Args:
        bundle: The loaded bundle.
        use_test_resources: When given, also check that the bundle's
            test resources match the requested mode.

    Returns:
        True if validation passes.

    Raises:
        ValidationError: If validation fails.
    """
    try:
        jsonschema.validate(instance=bundle.placement, schema=PLACEMENT_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ValidationError(f"Placement template validation failed: {e.message}", [str(e)])

    errors = []
    for resource in bundle.resources:
        try:
            jsonschema.validate(instance=resource, schema=TEST_RESOURCE_SCHEMA)
        except jsonschema.ValidationError as e:
            name = (resource.get("metadata") or {}).get("name", "<unnamed>")
            errors.append(f"Test resource '{name}': {e.message}")
    if errors:
        raise ValidationError("Test resource validation failed", errors)

    errors = _semantic_validation(bundle, use_test_resources)
    if errors:
        raise ValidationError("Semantic validation failed", errors)

    return True


def _semantic_validation(bundle: ManifestBundle, use_test_resources: Optional[bool]) -> List[str]:
    """Perform semantic validation beyond schema validation."""
    errors = []

    api_version = bundle.placement.get("apiVersion", "")
    if api_version and not api_version.startswith(PLACEMENT_GROUP + "/"):
        errors.append(f"Placement template has unexpected apiVersion: {api_version}")

    seen = set()
    for resource in bundle.resources:
        key = (resource.get("kind"), resource.get("metadata", {}).get("name"))
        if key in seen:
            errors.append(f"Duplicate test resource: {key[0]} '{key[1]}'")
        seen.add(key)

    if use_test_resources is True and not bundle.resources:
        errors.append("Test resources were requested but the bundle contains none")
    if use_test_resources is False and bundle.resources:
        errors.append(
            f"Bundle contains {len(bundle.resources)} test resource(s) "
            "but test resources were not requested"
        )

    selectors = bundle.placement.get("spec", {}).get("resourceSelectors") or []
    if not selectors and not use_test_resources:
        errors.append("Placement template selects no resources")

    return errors


def validate_config(config: Dict[str, Any]) -> bool:
    """Validate a load-test config dictionary (camelCase keys).

    Raises:
        ValidationError: If validation fails.
    """
    try:
        jsonschema.validate(instance=config, schema=LOADTEST_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ValidationError(f"Config validation failed: {e.message}", [str(e)])

    errors = []
    if config.get("deadline") is not None and config.get("pollInterval") is not None:
        if config["pollInterval"] > config["deadline"]:
            errors.append("pollInterval must not be longer than deadline")
    if errors:
        raise ValidationError("Semantic validation failed", errors)

    return True
