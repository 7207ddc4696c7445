"""Column mapping.

Projects raw parsed rows onto target field keys according to a set of
ColumnMapping directives, validates a mapping set before any row is touched,
and proposes a default mapping from header names.
"""

import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import structlog

from .exceptions import (
    CustomFieldsDisabledError,
    DuplicateFieldError,
    MappingConflictError,
    MappingIncompleteError,
    UnknownFieldError,
)
from .models import ColumnMapping, FieldSpec, MappingStatus

logger = structlog.get_logger(__name__)

# Selection markers for build_mappings
IGNORE = "__ignore__"
CUSTOM = "__custom__"

SIMILARITY_THRESHOLD = 0.6

_NON_ALNUM_RE = re.compile(r"[^0-9a-z]+")


def map_row(row: Mapping[str, Any], mappings: Sequence[ColumnMapping]) -> Dict[str, Any]:
    """Project one raw row onto target keys.

    Ignored columns are dropped; a source column missing from the row maps
    to None.
    """
    return {m.target_key: row.get(m.source_column) for m in mappings if m.is_active}


def check_field_keys(fields: Sequence[FieldSpec]) -> None:
    """Raise DuplicateFieldError if two field specs share a key."""
    seen = set()
    for field in fields:
        if field.key in seen:
            raise DuplicateFieldError(field.key)
        seen.add(field.key)


def validate_mappings(
    mappings: Sequence[ColumnMapping],
    fields: Sequence[FieldSpec],
    enable_custom_fields: bool = True,
) -> None:
    """Check a mapping set against the declared fields.

    Args:
        mappings: One directive per source column
        fields: Declared target fields
        enable_custom_fields: Whether custom pass-through columns are allowed

    Raises:
        MappingConflictError: If two active mappings share a target key
        UnknownFieldError: If a mapped target key is not a declared field
        CustomFieldsDisabledError: If custom columns are used while disabled
        MappingIncompleteError: If a required field has no mapping
    """
    declared = {f.key for f in fields}
    targets: Dict[str, List[str]] = {}

    for mapping in mappings:
        if not mapping.is_active:
            continue
        targets.setdefault(mapping.target_key, []).append(mapping.source_column)

    for target_key, columns in targets.items():
        if len(columns) > 1:
            raise MappingConflictError(target_key, columns)

    for mapping in mappings:
        if mapping.status == MappingStatus.MAPPED and mapping.target_key not in declared:
            raise UnknownFieldError(mapping.target_key)

    custom_columns = [m.source_column for m in mappings if m.status == MappingStatus.CUSTOM]
    if custom_columns and not enable_custom_fields:
        raise CustomFieldsDisabledError(custom_columns)

    missing = [f.label for f in fields if f.is_required and f.key not in targets]
    if missing:
        raise MappingIncompleteError(missing)


def build_mappings(
    columns: Sequence[str],
    selections: Mapping[str, Optional[str]],
    fields: Sequence[FieldSpec],
) -> List[ColumnMapping]:
    """Build one ColumnMapping per column from a per-column selection.

    Args:
        columns: Source column names in file order
        selections: column -> field key, IGNORE or CUSTOM
        fields: Declared target fields

    Returns:
        Mappings in column order; unselected columns are ignored

    Raises:
        UnknownFieldError: If a selection names an undeclared field
    """
    by_key = {f.key: f for f in fields}
    mappings: List[ColumnMapping] = []

    for column in columns:
        selection = selections.get(column)
        if selection is None or selection == IGNORE:
            mappings.append(ColumnMapping.ignored(column))
        elif selection == CUSTOM:
            mappings.append(ColumnMapping.custom(column))
        elif selection in by_key:
            mappings.append(ColumnMapping.mapped(column, by_key[selection]))
        else:
            raise UnknownFieldError(selection)

    return mappings


def normalize_name(name: str) -> str:
    """Lower-case and drop everything but letters and digits."""
    return _NON_ALNUM_RE.sub("", str(name).lower())


def similarity(str1: str, str2: str) -> float:
    """Jaccard similarity of character bigrams (0-1)."""

    def get_ngrams(s: str, n: int = 2) -> set:
        return {s[i : i + n] for i in range(len(s) - n + 1)}

    ngrams1 = get_ngrams(str1)
    ngrams2 = get_ngrams(str2)

    if not ngrams1 and not ngrams2:
        return 1.0 if str1 == str2 else 0.0
    if not ngrams1 or not ngrams2:
        return 0.0

    return len(ngrams1 & ngrams2) / len(ngrams1 | ngrams2)


def _field_names(field: FieldSpec) -> Iterable[str]:
    names = {normalize_name(field.key)}
    if field.display_name:
        names.add(normalize_name(field.display_name))
    return [n for n in names if n]


def suggest_mappings(columns: Sequence[str], fields: Sequence[FieldSpec]) -> List[ColumnMapping]:
    """Propose a mapping for each column from header names.

    Exact normalized matches against field keys or display names are taken
    first, then the best bigram-similarity match at or above the threshold.
    Each field is used at most once; columns left over are ignored.
    """
    assigned: Dict[str, FieldSpec] = {}
    used = set()

    for column in columns:
        name = normalize_name(column)
        for field in fields:
            if field.key not in used and name and name in _field_names(field):
                assigned[column] = field
                used.add(field.key)
                break

    candidates: List[Tuple[float, int, int]] = []
    for ci, column in enumerate(columns):
        if column in assigned:
            continue
        name = normalize_name(column)
        for fi, field in enumerate(fields):
            if field.key in used:
                continue
            score = max((similarity(name, n) for n in _field_names(field)), default=0.0)
            if score >= SIMILARITY_THRESHOLD:
                candidates.append((score, ci, fi))

    # best score first; ties go to the earlier column, then the earlier field
    for score, ci, fi in sorted(candidates, key=lambda c: (-c[0], c[1], c[2])):
        column, field = columns[ci], fields[fi]
        if column in assigned or field.key in used:
            continue
        assigned[column] = field
        used.add(field.key)

    return [
        ColumnMapping.mapped(c, assigned[c]) if c in assigned else ColumnMapping.ignored(c)
        for c in columns
    ]


class ColumnMapper:
    """Maps raw rows onto a declared set of fields."""

    def __init__(self, fields: Sequence[FieldSpec], enable_custom_fields: bool = True):
        """Initialize the mapper.

        Args:
            fields: Declared target fields
            enable_custom_fields: Whether custom pass-through columns are allowed

        Raises:
            DuplicateFieldError: If two fields share a key
        """
        check_field_keys(fields)
        self.fields = list(fields)
        self.enable_custom_fields = enable_custom_fields
        self.logger = logger.bind(component="ColumnMapper")

    def suggest(self, columns: Sequence[str]) -> List[ColumnMapping]:
        mappings = suggest_mappings(columns, self.fields)
        self.logger.info(
            "Suggested column mappings",
            columns=len(columns),
            mapped=sum(1 for m in mappings if m.status == MappingStatus.MAPPED),
        )
        return mappings

    def build(
        self, columns: Sequence[str], selections: Mapping[str, Optional[str]]
    ) -> List[ColumnMapping]:
        return build_mappings(columns, selections, self.fields)

    def validate(self, mappings: Sequence[ColumnMapping]) -> None:
        """Validate a mapping set, logging the failure before re-raising."""
        try:
            validate_mappings(mappings, self.fields, self.enable_custom_fields)
        except (
            MappingConflictError,
            UnknownFieldError,
            CustomFieldsDisabledError,
            MappingIncompleteError,
        ) as e:
            self.logger.warning("Mapping validation failed", error=e.message, **e.details)
            raise

    def map_rows(
        self, rows: Iterable[Mapping[str, Any]], mappings: Sequence[ColumnMapping]
    ) -> List[Dict[str, Any]]:
        """Validate `mappings` once, then project every row."""
        self.validate(mappings)
        return [map_row(row, mappings) for row in rows]
