"""YAML schema and mapping files.

A schema file declares the target fields::

    fields:
      - key: email
        display_name: Email
        type: email
        required: true
        rules:
          - rule: unique
            allow_empty: true
          - rule: regex
            pattern: "@example\\.com$"
            message: Company address expected
            severity: warning

A mapping file selects a target for each source column::

    mappings:
      E-mail: email
      Notes: __custom__
      Internal id: __ignore__

Custom rules wrap a Python predicate and can only be declared in code.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
import yaml
from pydantic import ValidationError

from .exceptions import ConfigError, InvalidRuleError
from .mapper import check_field_keys
from .models import FieldSpec

logger = structlog.get_logger(__name__)

_YAML_RULES = ("required", "unique", "regex")


def _read_yaml(path: Union[str, Path], section: str) -> Dict[str, Any]:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}", config_section=section) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", config_section=section) from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping", config_section=section)
    return data


def _check_rules(raw_field: Mapping[str, Any]) -> None:
    key = raw_field.get("key")
    for raw_rule in raw_field.get("rules") or []:
        kind = raw_rule.get("rule") if isinstance(raw_rule, dict) else None
        if kind == "custom":
            raise InvalidRuleError("custom rules cannot be declared in a schema file", key=key)
        if kind not in _YAML_RULES:
            raise InvalidRuleError(f"unsupported rule {kind!r}", key=key)


def load_field_specs(source: Union[str, Path, Mapping[str, Any]]) -> List[FieldSpec]:
    """Load field specs from a YAML file or an already-parsed document.

    Args:
        source: Path to a YAML file, or a dict with a ``fields`` list

    Returns:
        FieldSpecs in declaration order

    Raises:
        ConfigError: If the document is unreadable or a field is invalid
        InvalidRuleError: If a rule cannot be built from the document
        UnknownFieldTypeError: If a field declares an unknown type
        DuplicateFieldError: If two fields share a key
    """
    data = source if isinstance(source, Mapping) else _read_yaml(source, "fields")

    raw_fields = data.get("fields")
    if not isinstance(raw_fields, list):
        raise ConfigError("Schema must contain a 'fields' list", config_section="fields")

    fields: List[FieldSpec] = []
    for position, raw_field in enumerate(raw_fields):
        if not isinstance(raw_field, dict):
            raise ConfigError(
                f"Field #{position + 1} must be a mapping", config_section="fields"
            )
        _check_rules(raw_field)
        try:
            fields.append(FieldSpec(**raw_field))
        except ValidationError as e:
            raise ConfigError(
                f"Invalid field #{position + 1}: {e.errors()[0]['msg']}",
                config_section="fields",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    check_field_keys(fields)
    logger.info("Loaded field specs", fields=len(fields))
    return fields


def load_mapping_selections(
    source: Union[str, Path, Mapping[str, Any]]
) -> Dict[str, Optional[str]]:
    """Load a column -> field key / ``__ignore__`` / ``__custom__`` selection map."""
    data = source if isinstance(source, Mapping) else _read_yaml(source, "mappings")

    selections = data.get("mappings")
    if not isinstance(selections, dict):
        raise ConfigError(
            "Mapping file must contain a 'mappings' table", config_section="mappings"
        )

    return {
        str(column): (None if target is None else str(target))
        for column, target in selections.items()
    }
