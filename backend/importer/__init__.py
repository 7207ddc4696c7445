"""Tabular Import Engine.

Maps the columns of an uploaded CSV file onto a declared set of target
fields, validates every row, and keeps the rows editable until a clean
dataset can be emitted.

Key Components:
- Column mapping with suggested defaults
- Type coercion (string, number, boolean, email, date)
- Row rules (required, regex, custom) and table-wide uniqueness
- Edit / delete / finalize with full re-validation
- CSV template export and YAML schema files
"""

from .core import ImportConfig, ImportSession
from .exceptions import (
    ConfigError,
    CustomFieldsDisabledError,
    DatasetFinalizedError,
    DuplicateFieldError,
    FileTooLargeError,
    FinalizeError,
    FinalizePolicyMismatchError,
    ImporterError,
    InvalidRuleError,
    MalformedInputError,
    MappingConflictError,
    MappingIncompleteError,
    ParseError,
    RowLimitExceededError,
    RowNotFoundError,
    StateError,
    UnknownFieldError,
    UnknownFieldTypeError,
    UnresolvedErrorsError,
)
from .mapper import (
    CUSTOM,
    IGNORE,
    ColumnMapper,
    build_mappings,
    map_row,
    suggest_mappings,
    validate_mappings,
)
from .models import (
    ColumnMapping,
    CustomFieldPolicy,
    CustomRule,
    Dataset,
    DatasetState,
    Diagnostic,
    DiagnosticOrigin,
    FieldSpec,
    FieldType,
    MappingStatus,
    ParsedTable,
    RegexRule,
    RequiredRule,
    Row,
    Severity,
    UniqueRule,
)
from .schema_loader import load_field_specs, load_mapping_selections
from .state import RowStateManager
from .template import generate_csv_template
from .uniqueness import UniquenessAuditor
from .validators import SchemaValidator

__all__ = [
    # Orchestration
    "ImportSession",
    "ImportConfig",
    # Components
    "ColumnMapper",
    "SchemaValidator",
    "UniquenessAuditor",
    "RowStateManager",
    # Mapping helpers
    "map_row",
    "validate_mappings",
    "build_mappings",
    "suggest_mappings",
    "IGNORE",
    "CUSTOM",
    # Schema files and templates
    "load_field_specs",
    "load_mapping_selections",
    "generate_csv_template",
    # Models
    "FieldSpec",
    "FieldType",
    "RequiredRule",
    "UniqueRule",
    "RegexRule",
    "CustomRule",
    "ColumnMapping",
    "MappingStatus",
    "Diagnostic",
    "DiagnosticOrigin",
    "Severity",
    "Row",
    "ParsedTable",
    "Dataset",
    "DatasetState",
    "CustomFieldPolicy",
    # Exceptions
    "ImporterError",
    "ParseError",
    "RowLimitExceededError",
    "MalformedInputError",
    "FileTooLargeError",
    "ConfigError",
    "MappingConflictError",
    "MappingIncompleteError",
    "UnknownFieldTypeError",
    "UnknownFieldError",
    "DuplicateFieldError",
    "InvalidRuleError",
    "CustomFieldsDisabledError",
    "FinalizeError",
    "UnresolvedErrorsError",
    "StateError",
    "RowNotFoundError",
    "DatasetFinalizedError",
    "FinalizePolicyMismatchError",
]
