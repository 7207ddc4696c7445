"""Row validation against the declared fields.

For every row and every declared field: coerce the value to the field type,
check required-ness, then run the row-level rules (regex and custom) in
declaration order. At most one diagnostic is kept per (row, field): the one
with the highest severity, the earliest evaluated on ties.
"""

from typing import Any, Dict, Iterable, List, Mapping, Sequence, Union

import structlog

from .coercion import coerce_value
from .models import (
    ColumnMapping,
    Diagnostic,
    FieldSpec,
    MappingStatus,
    Row,
    Severity,
    is_absent,
)

logger = structlog.get_logger(__name__)

REQUIRED_MESSAGE = "required"


def merge_diagnostic(diagnostics: Dict[str, Diagnostic], key: str, new: Diagnostic) -> None:
    """Keep `new` only if it outranks what is already recorded for `key`."""
    existing = diagnostics.get(key)
    if existing is None or new.severity.priority > existing.severity.priority:
        diagnostics[key] = new


def count_by_severity(rows: Iterable[Row]) -> Dict[str, int]:
    """Number of diagnostics per severity across `rows`."""
    counts = {s.value: 0 for s in Severity}
    for row in rows:
        for diagnostic in row.diagnostics.values():
            counts[diagnostic.severity.value] += 1
    return counts


class SchemaValidator:
    """Coerces and checks mapped rows, one row at a time."""

    def __init__(self, fields: Sequence[FieldSpec], mappings: Sequence[ColumnMapping]):
        self.fields = list(fields)
        self.mappings = list(mappings)
        self.mapped_keys = {m.target_key for m in self.mappings if m.is_active}
        self.custom_keys = [m.target_key for m in self.mappings if m.status == MappingStatus.CUSTOM]
        self.logger = logger.bind(component="SchemaValidator")

    def validate(self, rows: Sequence[Union[Row, Mapping[str, Any]]]) -> List[Row]:
        """Validate a full row set.

        Args:
            rows: Row objects (re-validation) or mapped dicts (first load, indexed
                by position)

        Returns:
            New Row objects with coerced values and row-origin diagnostics
        """
        self.logger.debug("Starting row validation", rows=len(rows))

        validated = []
        for position, row in enumerate(rows):
            if isinstance(row, Row):
                validated.append(self.validate_row(row.fields, row.index))
            else:
                validated.append(self.validate_row(row, position))

        self.logger.info(
            "Row validation completed",
            rows=len(validated),
            diagnostics=count_by_severity(validated),
        )
        return validated

    def validate_row(self, values: Mapping[str, Any], index: int) -> Row:
        """Validate one row in isolation."""
        fields: Dict[str, Any] = dict(values)
        diagnostics: Dict[str, Diagnostic] = {}
        absent: Dict[str, bool] = {}

        for key in self.custom_keys:
            if key in fields and is_absent(fields[key]):
                fields[key] = None

        for spec in self.fields:
            raw = fields.get(spec.key)
            result = coerce_value(raw, spec.type)
            absent[spec.key] = result.absent

            if spec.key in fields:
                if result.absent:
                    fields[spec.key] = None
                elif result.ok:
                    fields[spec.key] = result.value

            if not result.ok:
                merge_diagnostic(
                    diagnostics, spec.key, Diagnostic(message=f"invalid {spec.type.value}")
                )

        for spec in self.fields:
            if spec.is_required and absent[spec.key]:
                merge_diagnostic(diagnostics, spec.key, Diagnostic(message=REQUIRED_MESSAGE))

            if spec.key not in self.mapped_keys:
                continue
            if absent[spec.key] and not spec.is_required:
                continue

            value = fields.get(spec.key)
            for rule in spec.row_rules:
                if not self._passes(rule, value, fields, spec.key, index):
                    merge_diagnostic(
                        diagnostics,
                        spec.key,
                        Diagnostic(message=rule.message, severity=rule.severity),
                    )

        return Row(index=index, fields=fields, diagnostics=diagnostics)

    def _passes(self, rule: Any, value: Any, row: Mapping[str, Any], key: str, index: int) -> bool:
        try:
            return rule.evaluate(value, row)
        except Exception as e:
            # a broken predicate counts as a failed rule for this row only
            self.logger.warning(
                "Rule evaluation raised",
                field=key,
                row_index=index,
                rule=rule.rule,
                error=str(e),
            )
            return False


def validate_rows(
    rows: Sequence[Union[Row, Mapping[str, Any]]],
    fields: Sequence[FieldSpec],
    mappings: Sequence[ColumnMapping],
) -> List[Row]:
    """Validate `rows` with a one-off SchemaValidator."""
    return SchemaValidator(fields, mappings).validate(rows)
