"""Command-line overrides for ``config.json``.

``workerctl up -o limits.mem_mb=128,features.enable_seccomp=false`` patches
the base configuration and writes the result next to it as
``config.json.overrides``. Overrides may only replace the value of an
existing scalar leaf; they never add keys or change a value's kind.
"""

import json
from copy import deepcopy
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

import structlog

from ..models.errors import ConfigurationError
from ..utils.files import atomic_write_text

logger = structlog.get_logger(__name__)


class ValueKind(str, Enum):
    """Category of a node in a JSON configuration tree."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    NULL = "null"

    @property
    def is_scalar(self) -> bool:
        return self in (ValueKind.STRING, ValueKind.NUMBER, ValueKind.BOOLEAN)


def kind_of(value: Any) -> ValueKind:
    """Classify a decoded JSON value."""
    # bool is a subclass of int, so it must be tested first
    if isinstance(value, bool):
        return ValueKind.BOOLEAN
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, dict):
        return ValueKind.OBJECT
    if isinstance(value, list):
        return ValueKind.ARRAY
    if value is None:
        return ValueKind.NULL
    raise TypeError(f"not a JSON value: {type(value).__name__}")


def coerce_value(existing: Any, raw: str, key: str) -> Any:
    """Convert raw override text to the kind of the value it replaces."""
    kind = kind_of(existing)

    if kind is ValueKind.STRING:
        return raw

    if kind is ValueKind.NUMBER:
        try:
            return int(raw)
        except ValueError as e:
            raise ConfigurationError(
                f"'{raw}' for {key} is not a valid integer",
                details={"key": key, "value": raw},
            ) from e

    if kind is ValueKind.BOOLEAN:
        lowered = raw.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        raise ConfigurationError(
            f"'{raw}' for {key} is not a valid boolean value",
            details={"key": key, "value": raw},
        )

    raise ConfigurationError(
        f"config values of type {kind.value} ({key}) must be edited manually in the config file",
        details={"key": key, "kind": kind.value},
    )


def parse_overrides(overrides: str) -> List[Tuple[List[str], str]]:
    """Split ``a.b=1,c=x`` into ``[(["a", "b"], "1"), (["c"], "x")]``."""
    parsed = []
    for item in overrides.split(","):
        parts = item.split("=")
        if len(parts) != 2:
            raise ConfigurationError(
                f"Could not parse key=val: '{item}'", details={"override": item}
            )
        key, value = parts
        parsed.append((key.split("."), value))
    return parsed


def merge_overrides(tree: Dict[str, Any], overrides: str) -> Dict[str, Any]:
    """Return a copy of tree with overrides applied; tree itself is not modified."""
    merged = deepcopy(tree)

    for keys, value in parse_overrides(overrides):
        node = merged
        for segment in keys[:-1]:
            if segment not in node:
                raise ConfigurationError(
                    f"key '{segment}' not found", details={"key": ".".join(keys)}
                )
            child = node[segment]
            if not isinstance(child, dict):
                raise ConfigurationError(
                    f"{segment} refers to a {kind_of(child).value}, not a map",
                    details={"key": ".".join(keys)},
                )
            node = child

        leaf = keys[-1]
        if leaf not in node:
            raise ConfigurationError(
                f"invalid option: '{leaf}'", details={"key": ".".join(keys)}
            )
        node[leaf] = coerce_value(node[leaf], value, leaf)

    return merged


def render_tree(tree: Dict[str, Any]) -> str:
    return json.dumps(tree, indent=4, sort_keys=True) + "\n"


def apply_overrides(
    base_path: Union[str, Path],
    output_path: Union[str, Path],
    overrides: str,
) -> Dict[str, Any]:
    """Apply overrides to base_path and write the merged tree to output_path.

    Args:
        base_path: Configuration file to read (never modified)
        output_path: Destination of the merged configuration
        overrides: Comma separated ``dotted.key=value`` pairs

    Returns:
        The merged configuration tree

    Raises:
        ConfigurationError: on unreadable input or any invalid override;
            output_path is not written in that case
    """
    base_path = Path(base_path)
    output_path = Path(output_path)

    try:
        tree = json.loads(base_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(
            f"Could not read config {base_path}: {e}", details={"path": str(base_path)}
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Config {base_path} is not valid JSON: {e}",
            details={"path": str(base_path)},
        ) from e

    if not isinstance(tree, dict):
        raise ConfigurationError(
            f"Config {base_path} must contain a JSON object",
            details={"path": str(base_path)},
        )

    merged = merge_overrides(tree, overrides)

    try:
        atomic_write_text(output_path, render_tree(merged))
    except OSError as e:
        raise ConfigurationError(
            f"Failed to write {output_path}: {e}", details={"path": str(output_path)}
        ) from e

    logger.info(
        "Applied config overrides",
        base=str(base_path),
        output=str(output_path),
        overrides=overrides,
    )
    return merged
