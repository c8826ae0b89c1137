"""JSON Schema-based validation for dnsfilter configuration.

This module validates the parsed configuration mapping against the JSON Schema
document shipped next to it as ``config-schema.json``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator, ValidationError

logger = logging.getLogger(__name__)


def get_default_schema_path() -> Path:
    """Brief: Resolve the default JSON Schema path for configuration.

    Inputs:
      - None.

    Outputs:
      - Path to the packaged ``config-schema.json`` file.
    """

    return Path(__file__).resolve().parent / "config-schema.json"


def _load_schema(schema_path: Optional[Path] = None) -> Dict[str, Any]:
    """Brief: Load JSON Schema from disk.

    Inputs:
      - schema_path: Optional explicit path to the schema file.

    Outputs:
      - Dict representing the JSON Schema.
    """

    path = schema_path or get_default_schema_path()
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _format_errors(errors: List[ValidationError], *, config_path: Optional[str]) -> str:
    """Brief: Format jsonschema validation errors into a human-readable string.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.
      - config_path: Optional path to the config file being validated.

    Outputs:
      - String suitable for display in logs or CLI output.
    """

    header = (
        f"Invalid configuration in {config_path or '<config dict>'}:"
        if errors
        else "Invalid configuration:"
    )
    lines: List[str] = [header]
    for err in errors:
        instance_path = "/".join(str(p) for p in err.path) or "<root>"
        schema_path = "/".join(str(p) for p in err.schema_path)
        lines.append(f"- {instance_path}: {err.message} (schema: {schema_path})")
    return "\n".join(lines)


def _split_extra_property_errors(
    errors: List[ValidationError],
) -> tuple[List[ValidationError], List[ValidationError]]:
    """Brief: Partition validation errors into extra-property vs other errors.

    Inputs:
      - errors: List of jsonschema.ValidationError instances.

    Outputs:
      - (extra_errors, other_errors).
    """

    extra: List[ValidationError] = []
    other: List[ValidationError] = []
    for err in errors:
        if err.validator == "additionalProperties":
            extra.append(err)
        else:
            other.append(err)
    return extra, other


def validate_config(
    cfg: Dict[str, Any],
    *,
    schema_path: Optional[Path] = None,
    config_path: Optional[str] = None,
    unknown_keys: str = "warn",
) -> None:
    """Brief: Validate a parsed configuration mapping against JSON Schema.

    Inputs:
      - cfg: Top-level configuration mapping.
      - schema_path: Optional explicit path to the JSON Schema file.
      - config_path: Optional path of the config file, used only in messages.
      - unknown_keys: Policy for keys the schema does not describe:

        - "ignore": drop extra-property errors silently.
        - "warn": (default) log them as a warning.
        - "error": treat them as fatal alongside all other errors.

    Outputs:
      - None on success.

    Raises:
      - ValueError: when validation fails (any non-extra error, or extra keys
        under the "error" policy). The message lists every offending path.

    Example:
      >>> validate_config({"port": 5353, "forwarders": [{"host": "1.1.1.1"}]})
    """

    if unknown_keys not in {"ignore", "warn", "error"}:
        raise ValueError(
            f"unknown_keys policy must be 'ignore', 'warn', or 'error', got {unknown_keys!r}"
        )

    validator = Draft202012Validator(_load_schema(schema_path))
    all_errors = sorted(
        validator.iter_errors(cfg), key=lambda e: [str(p) for p in e.path]
    )
    if not all_errors:
        return None

    extra_errors, other_errors = _split_extra_property_errors(all_errors)

    if other_errors:
        message = _format_errors(other_errors + extra_errors, config_path=config_path)
        raise ValueError(message)

    message = _format_errors(extra_errors, config_path=config_path)
    if unknown_keys == "ignore":
        return None
    if unknown_keys == "warn":
        logger.warning(message)
        return None
    raise ValueError(message)
