"""Importer Data Models.

Pydantic models describing the target schema (field specs and their rules),
column mapping directives, and the validated row set with its per-cell
diagnostics.
"""

import re
import uuid
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import IO, Annotated, Any, Callable, Dict, List, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .exceptions import InvalidRuleError, UnknownFieldTypeError

CUSTOM_FIELDS_KEY = "custom_fields"

# Anything the CSV parser can read from
Source = Union[str, Path, bytes, IO]


class FieldType(str, Enum):
    """Types a target field can be coerced to."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    EMAIL = "email"
    DATE = "date"


class Severity(str, Enum):
    """Severity of a diagnostic. Only ERROR blocks finalize."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

    @property
    def priority(self) -> int:
        return _SEVERITY_PRIORITY[self]


_SEVERITY_PRIORITY = {Severity.INFO: 1, Severity.WARNING: 2, Severity.ERROR: 3}


class DiagnosticOrigin(str, Enum):
    """Whether a finding came from one row in isolation or from the whole table."""

    ROW = "row"
    TABLE = "table"


class MappingStatus(str, Enum):
    """Disposition of a source column."""

    MAPPED = "mapped"
    CUSTOM = "custom"
    IGNORED = "ignored"


class CustomFieldPolicy(str, Enum):
    """How custom (pass-through) columns are packaged on finalize."""

    NESTED_OBJECT = "nested-object"
    JSON_STRING = "json-string"
    FLATTENED = "flattened"


class DatasetState(str, Enum):
    """Lifecycle of a loaded dataset."""

    LOADED = "loaded"
    FINALIZED = "finalized"


def is_absent(value: Any) -> bool:
    """None and blank strings count as "no value"."""
    if value is None:
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def value_as_text(value: Any) -> str:
    """Render a cell value the way it would appear in the source file."""
    if is_absent(value):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# JavaScript-style flag letters accepted on regex rules
_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "u": re.UNICODE,
    "x": re.VERBOSE,
    "g": 0,
    "y": 0,
}


@lru_cache(maxsize=256)
def compile_pattern(pattern: str, flags: str = "") -> "re.Pattern[str]":
    """Compile a rule pattern, raising InvalidRuleError on bad input."""
    re_flags = 0
    for letter in flags:
        if letter not in _REGEX_FLAGS:
            raise InvalidRuleError(f"unsupported regex flag {letter!r}")
        re_flags |= _REGEX_FLAGS[letter]
    try:
        return re.compile(pattern, re_flags)
    except re.error as e:
        raise InvalidRuleError(f"invalid regex {pattern!r}: {e}") from e


# -- Rules (tagged by `rule`)


class RequiredRule(BaseModel):
    """The field must hold a value."""

    model_config = ConfigDict(frozen=True)

    rule: Literal["required"] = "required"

    def evaluate(self, value: Any, row: Mapping[str, Any]) -> bool:
        return not is_absent(value)


class UniqueRule(BaseModel):
    """The field's value must not repeat across the table."""

    model_config = ConfigDict(frozen=True)

    rule: Literal["unique"] = "unique"
    allow_empty: bool = Field(default=False, description="Exclude absent values from the count")
    message: str = Field(default="Field must be unique")
    severity: Severity = Field(default=Severity.ERROR)

    def exempts(self, value: Any) -> bool:
        return self.allow_empty and is_absent(value)

    def evaluate(self, value: Any, frequencies: Mapping[Any, int]) -> bool:
        """True when the value is unique given the table's value frequencies."""
        if self.exempts(value):
            return True
        return frequencies.get(unique_key(value), 0) <= 1


class RegexRule(BaseModel):
    """The field's text must match a pattern."""

    model_config = ConfigDict(frozen=True)

    rule: Literal["regex"] = "regex"
    pattern: str
    flags: str = ""
    message: str
    severity: Severity = Field(default=Severity.ERROR)

    @model_validator(mode="after")
    def check_pattern(self) -> "RegexRule":
        compile_pattern(self.pattern, self.flags)
        return self

    def evaluate(self, value: Any, row: Mapping[str, Any]) -> bool:
        return compile_pattern(self.pattern, self.flags).search(value_as_text(value)) is not None


class CustomRule(BaseModel):
    """A caller-supplied predicate over the value and its whole row."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    rule: Literal["custom"] = "custom"
    predicate: Callable[[Any, Mapping[str, Any]], bool]
    message: str
    severity: Severity = Field(default=Severity.ERROR)

    def evaluate(self, value: Any, row: Mapping[str, Any]) -> bool:
        return bool(self.predicate(value, row))


RuleSpec = Annotated[
    Union[RequiredRule, UniqueRule, RegexRule, CustomRule],
    Field(discriminator="rule"),
]


def unique_key(value: Any) -> Any:
    """Hashable identity of a value for duplicate counting."""
    if is_absent(value):
        return None
    if isinstance(value, bool):
        return (type(value).__name__, value)
    if isinstance(value, (list, dict, set)):
        return repr(value)
    return value


class FieldSpec(BaseModel):
    """A declared target field."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    key: str = Field(description="Key the value is stored and returned under")
    display_name: Optional[str] = Field(None, description="Human-friendly label")
    type: FieldType = Field(default=FieldType.STRING, description="Declared value type")
    required: bool = Field(default=False, description="Whether a value is mandatory")
    rules: List[RuleSpec] = Field(default_factory=list, description="Rules in declaration order")
    example: Optional[Any] = Field(None, description="Example value for the CSV template")

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Keys must be non-blank."""
        v = v.strip()
        if not v:
            raise ValueError("Field key must not be empty")
        return v

    @field_validator("type", mode="before")
    @classmethod
    def validate_type(cls, v: Any, info) -> FieldType:
        """Reject types the coercion layer does not know."""
        if isinstance(v, FieldType):
            return v
        try:
            return FieldType(str(v).strip().lower())
        except ValueError:
            raise UnknownFieldTypeError(v, key=info.data.get("key")) from None

    @property
    def label(self) -> str:
        return self.display_name or self.key

    @property
    def is_required(self) -> bool:
        return self.required or any(isinstance(r, RequiredRule) for r in self.rules)

    @property
    def unique_rules(self) -> List[UniqueRule]:
        return [r for r in self.rules if isinstance(r, UniqueRule)]

    @property
    def row_rules(self) -> List[Union[RegexRule, CustomRule]]:
        return [r for r in self.rules if isinstance(r, (RegexRule, CustomRule))]


class ColumnMapping(BaseModel):
    """Where one source column goes."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    source_column: str
    status: MappingStatus
    target_key: Optional[str] = None
    field_type: Optional[FieldType] = None
    display_name: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def default_custom_target(cls, data: Any) -> Any:
        """Custom columns keep their source name as the target key."""
        if isinstance(data, dict):
            status = data.get("status")
            if status in (MappingStatus.CUSTOM, MappingStatus.CUSTOM.value) and not data.get(
                "target_key"
            ):
                data = {**data, "target_key": data.get("source_column")}
        return data

    @model_validator(mode="after")
    def check_target(self) -> "ColumnMapping":
        if self.status == MappingStatus.IGNORED and self.target_key is not None:
            raise ValueError("Ignored columns cannot have a target key")
        if self.status == MappingStatus.MAPPED and not self.target_key:
            raise ValueError("Mapped columns need a target key")
        return self

    @property
    def is_active(self) -> bool:
        return self.status != MappingStatus.IGNORED

    @classmethod
    def ignored(cls, source_column: str) -> "ColumnMapping":
        return cls(source_column=source_column, status=MappingStatus.IGNORED)

    @classmethod
    def custom(cls, source_column: str) -> "ColumnMapping":
        return cls(
            source_column=source_column,
            status=MappingStatus.CUSTOM,
            target_key=source_column,
        )

    @classmethod
    def mapped(cls, source_column: str, field: FieldSpec) -> "ColumnMapping":
        return cls(
            source_column=source_column,
            status=MappingStatus.MAPPED,
            target_key=field.key,
            field_type=field.type,
            display_name=field.display_name,
        )


class Diagnostic(BaseModel):
    """One validation finding on a (row, field) pair."""

    model_config = ConfigDict(frozen=True)

    message: str
    severity: Severity = Severity.ERROR
    origin: DiagnosticOrigin = DiagnosticOrigin.ROW


class Row(BaseModel):
    """A mapped row, its stable index and its per-field diagnostics."""

    index: int = Field(description="Identity assigned at ingestion; never reused")
    fields: Dict[str, Any] = Field(default_factory=dict)
    diagnostics: Dict[str, Diagnostic] = Field(default_factory=dict)

    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics.values())

    def highest_severity(self) -> Optional[Severity]:
        if not self.diagnostics:
            return None
        return max((d.severity for d in self.diagnostics.values()), key=lambda s: s.priority)


class ParsedTable(BaseModel):
    """Raw rows and normalized column names read from a file."""

    rows: List[Dict[str, Any]] = Field(description="Rows keyed by column name")
    columns: List[str] = Field(description="Normalized header names in file order")
    encoding: Optional[str] = Field(None, description="Encoding the file was read with")
    delimiter: str = Field(default=",", description="Column delimiter")

    @property
    def total_rows(self) -> int:
        return len(self.rows)


class Dataset(BaseModel):
    """Rows plus the schema and mapping set they were built from."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    rows: List[Row] = Field(default_factory=list)
    fields: List[FieldSpec]
    mappings: List[ColumnMapping]

    @property
    def target_keys(self) -> List[str]:
        return [m.target_key for m in self.mappings if m.is_active]

    @property
    def custom_keys(self) -> List[str]:
        return [m.target_key for m in self.mappings if m.status == MappingStatus.CUSTOM]

    def field(self, key: str) -> Optional[FieldSpec]:
        for f in self.fields:
            if f.key == key:
                return f
        return None
