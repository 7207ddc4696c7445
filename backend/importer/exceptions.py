"""Importer Exceptions.

Exception hierarchy for the tabular importer. Parse and configuration errors
abort an operation as a whole; data-quality findings are never raised, they
are attached to rows as diagnostics.
"""

from typing import Any, Optional, Dict, List


class ImporterError(Exception):
    """Base exception for importer errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
    ):
        """Initialize importer error.

        Args:
            message: Human-readable error message
            error_code: Machine-readable error code
            details: Additional error details
            recoverable: Whether the caller can fix the input and retry
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "recoverable": self.recoverable,
        }


# -- Parse errors


class ParseError(ImporterError):
    """Exception raised while reading the input file."""


class RowLimitExceededError(ParseError):
    """Raised the moment the file produces more data rows than allowed."""

    def __init__(self, limit: int, **kwargs):
        details = kwargs.pop("details", {})
        details["limit"] = limit
        super().__init__(
            f"Row limit exceeded: Only {limit} rows allowed.",
            error_code="row_limit_exceeded",
            details=details,
            **kwargs,
        )
        self.limit = limit


class MalformedInputError(ParseError):
    """Raised for unreadable input (bad quoting, ragged records, I/O failure)."""

    def __init__(self, detail: str, **kwargs):
        details = kwargs.pop("details", {})
        details["detail"] = detail
        super().__init__(
            f"Parsing failed: {detail}",
            error_code="malformed_input",
            details=details,
            **kwargs,
        )
        self.detail = detail


class FileTooLargeError(ParseError):
    """Raised when the input exceeds the configured byte size."""

    def __init__(self, limit: int, size: int, **kwargs):
        details = kwargs.pop("details", {})
        details.update({"limit": limit, "size": size})
        super().__init__(
            f"File is too large: {size} bytes > {limit} bytes allowed.",
            error_code="file_too_large",
            details=details,
            **kwargs,
        )
        self.limit = limit
        self.size = size


# -- Configuration errors


class ConfigError(ImporterError):
    """Exception raised for schema or mapping configuration errors."""

    def __init__(self, message: str, config_section: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_section: Configuration section that has the error
            **kwargs: Additional arguments for ImporterError
        """
        details = kwargs.get("details", {})
        if config_section:
            details["config_section"] = config_section

        kwargs["details"] = details
        kwargs["recoverable"] = False
        super().__init__(message, **kwargs)


class MappingConflictError(ConfigError):
    """Two columns were assigned the same target field."""

    def __init__(self, target_key: str, columns: Optional[List[str]] = None):
        details: Dict[str, Any] = {"target_key": target_key}
        if columns:
            details["columns"] = columns
        super().__init__(
            f"Each field can only be mapped once. Duplicate mapping for: {target_key}",
            config_section="mappings",
            error_code="mapping_conflict",
            details=details,
        )
        self.target_key = target_key


class MappingIncompleteError(ConfigError):
    """Required fields have no column mapped onto them."""

    def __init__(self, missing_fields: List[str]):
        super().__init__(
            f"Please map the required fields: {', '.join(missing_fields)}",
            config_section="mappings",
            error_code="mapping_incomplete",
            details={"missing_fields": list(missing_fields)},
        )
        self.missing_fields = list(missing_fields)


class UnknownFieldTypeError(ConfigError):
    """A field declares a type the importer cannot coerce."""

    def __init__(self, field_type: Any, key: Optional[str] = None):
        details: Dict[str, Any] = {"field_type": str(field_type)}
        if key:
            details["key"] = key
        super().__init__(
            f"Unknown field type: {field_type!r}",
            config_section="fields",
            error_code="unknown_field_type",
            details=details,
        )
        self.field_type = field_type


class UnknownFieldError(ConfigError):
    """A mapping or an edit names a target key the dataset does not declare."""

    def __init__(self, target_key: str):
        super().__init__(
            f"Unknown target field: {target_key}",
            config_section="fields",
            error_code="unknown_field",
            details={"target_key": target_key},
        )
        self.target_key = target_key


class DuplicateFieldError(ConfigError):
    """Two field specs share a key."""

    def __init__(self, key: str):
        super().__init__(
            f"Duplicate field key: {key}",
            config_section="fields",
            error_code="duplicate_field",
            details={"key": key},
        )
        self.key = key


class InvalidRuleError(ConfigError):
    """A rule definition cannot be built (bad regex, unsupported rule)."""

    def __init__(self, detail: str, key: Optional[str] = None):
        details: Dict[str, Any] = {"detail": detail}
        if key:
            details["key"] = key
        super().__init__(
            f"Invalid rule: {detail}",
            config_section="rules",
            error_code="invalid_rule",
            details=details,
        )
        self.detail = detail


class CustomFieldsDisabledError(ConfigError):
    """Columns were marked as custom while custom fields are turned off."""

    def __init__(self, columns: List[str]):
        super().__init__(
            f"Custom fields are disabled; cannot import columns as custom: {columns}",
            config_section="mappings",
            error_code="custom_fields_disabled",
            details={"columns": list(columns)},
        )
        self.columns = list(columns)


# -- Finalize / state errors


class FinalizeError(ImporterError):
    """Exception raised when the dataset cannot be emitted."""


class UnresolvedErrorsError(FinalizeError):
    """Rows still carry error-severity diagnostics."""

    def __init__(self, count: int):
        super().__init__(
            "There are rows with errors. Please fix them before importing.",
            error_code="unresolved_errors",
            details={"count": count},
        )
        self.count = count


class StateError(ImporterError):
    """Exception raised for invalid operations on a dataset."""


class RowNotFoundError(StateError):
    """An edit addressed a row index that is not in the dataset."""

    def __init__(self, row_index: int):
        super().__init__(
            f"Row not found: {row_index}",
            error_code="row_not_found",
            details={"row_index": row_index},
        )
        self.row_index = row_index


class DatasetFinalizedError(StateError):
    """The dataset was already finalized and can no longer change."""

    def __init__(self):
        super().__init__(
            "Dataset has already been finalized",
            error_code="dataset_finalized",
            recoverable=False,
        )


class FinalizePolicyMismatchError(StateError):
    """Finalize was repeated with a different custom-field policy."""

    def __init__(self, finalized_policy: Optional[str], requested_policy: Optional[str]):
        super().__init__(
            "Dataset was already finalized with another custom field policy",
            error_code="finalize_policy_mismatch",
            details={
                "finalized_policy": finalized_policy,
                "requested_policy": requested_policy,
            },
            recoverable=False,
        )
        self.finalized_policy = finalized_policy
        self.requested_policy = requested_policy
