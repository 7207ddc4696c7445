"""Row-State Manager.

Owns a loaded dataset through edits, deletions and finalize. Diagnostics are
never edited directly: every mutation re-runs row validation and the
uniqueness audit over the whole dataset.
"""

import copy
import json
from typing import Any, Dict, Iterable, List, Optional, Union

import structlog

from .exceptions import (
    DatasetFinalizedError,
    FinalizePolicyMismatchError,
    RowNotFoundError,
    UnknownFieldError,
    UnresolvedErrorsError,
)
from .models import CUSTOM_FIELDS_KEY, CustomFieldPolicy, Dataset, DatasetState, Row, Severity
from .uniqueness import UniquenessAuditor
from .validators import SchemaValidator

logger = structlog.get_logger(__name__)


class RowStateManager:
    """Edit, delete and finalize operations on one dataset."""

    def __init__(self, dataset: Dataset):
        """Initialize the manager and derive diagnostics for the dataset.

        Args:
            dataset: Mapped rows with their fields and mapping set
        """
        self.dataset = dataset
        self.validator = SchemaValidator(dataset.fields, dataset.mappings)
        self.auditor = UniquenessAuditor(dataset.fields, dataset.mappings)
        self.state = DatasetState.LOADED
        self._records: Optional[List[Dict[str, Any]]] = None
        self._policy: Optional[CustomFieldPolicy] = None
        self.logger = logger.bind(component="RowStateManager")

        self._revalidate()

    @property
    def rows(self) -> List[Row]:
        """Deep copies of the current rows."""
        return [row.model_copy(deep=True) for row in self.dataset.rows]

    @property
    def is_finalized(self) -> bool:
        return self.state == DatasetState.FINALIZED

    @property
    def error_count(self) -> int:
        """Number of rows carrying at least one error diagnostic."""
        return sum(1 for row in self.dataset.rows if row.has_errors())

    def summary(self) -> Dict[str, int]:
        """Row counts by highest diagnostic severity."""
        counts = {"total_rows": len(self.dataset.rows), "valid_rows": 0}
        counts.update({f"{s.value}_rows": 0 for s in Severity})
        for row in self.dataset.rows:
            severity = row.highest_severity()
            if severity is None:
                counts["valid_rows"] += 1
            else:
                counts[f"{severity.value}_rows"] += 1
        return counts

    def edit_cell(self, row_index: int, target_key: str, value: Any) -> List[Row]:
        """Replace one cell value and re-derive all diagnostics.

        Args:
            row_index: Index assigned to the row at ingestion
            target_key: Mapped or custom field key
            value: New raw value

        Returns:
            Snapshot of all rows after re-validation

        Raises:
            DatasetFinalizedError: If the dataset was already finalized
            RowNotFoundError: If no row has `row_index`
            UnknownFieldError: If `target_key` is not part of the mapping set
        """
        self._check_mutable()

        row = self._find(row_index)
        if target_key not in self.dataset.target_keys:
            raise UnknownFieldError(target_key)

        row.fields[target_key] = value
        self.logger.info("Cell edited", row_index=row_index, field=target_key)

        self._revalidate()
        return self.rows

    def delete_rows(self, row_indexes: Iterable[int]) -> List[Row]:
        """Remove rows by index; unknown indexes are ignored."""
        self._check_mutable()

        doomed = set(row_indexes)
        before = len(self.dataset.rows)
        self.dataset.rows = [row for row in self.dataset.rows if row.index not in doomed]
        self.logger.info(
            "Rows deleted",
            requested=len(doomed),
            deleted=before - len(self.dataset.rows),
        )

        self._revalidate()
        return self.rows

    def finalize(
        self, custom_field_policy: Union[CustomFieldPolicy, str, None] = None
    ) -> List[Dict[str, Any]]:
        """Emit the clean records.

        Args:
            custom_field_policy: How custom columns are packaged; None leaves
                them at the top level

        Returns:
            One plain dict per row, in row order

        Raises:
            UnresolvedErrorsError: If any row still has an error diagnostic
            FinalizePolicyMismatchError: If the dataset was already finalized
                with a different policy
        """
        policy = CustomFieldPolicy(custom_field_policy) if custom_field_policy else None

        if self._records is not None:
            if policy != self._policy:
                raise FinalizePolicyMismatchError(
                    self._policy.value if self._policy else None,
                    policy.value if policy else None,
                )
            return copy.deepcopy(self._records)

        errors = self.error_count
        if errors:
            self.logger.warning("Finalize blocked by row errors", rows_with_errors=errors)
            raise UnresolvedErrorsError(errors)

        custom_keys = self.dataset.custom_keys

        records = [self._to_record(row, custom_keys, policy) for row in self.dataset.rows]

        self._records = records
        self._policy = policy
        self.state = DatasetState.FINALIZED
        self.logger.info("Dataset finalized", rows=len(records), custom_field_policy=policy)
        return copy.deepcopy(records)

    def _to_record(
        self, row: Row, custom_keys: List[str], policy: Optional[CustomFieldPolicy]
    ) -> Dict[str, Any]:
        record = dict(row.fields)
        if not custom_keys or policy in (None, CustomFieldPolicy.FLATTENED):
            return record

        custom = {key: record.pop(key) for key in custom_keys if key in record}
        if policy == CustomFieldPolicy.JSON_STRING:
            record[CUSTOM_FIELDS_KEY] = json.dumps(custom, default=str)
        else:
            record[CUSTOM_FIELDS_KEY] = custom
        return record

    def _find(self, row_index: int) -> Row:
        for row in self.dataset.rows:
            if row.index == row_index:
                return row
        raise RowNotFoundError(row_index)

    def _check_mutable(self) -> None:
        if self.is_finalized:
            raise DatasetFinalizedError()

    def _revalidate(self) -> None:
        self.dataset.rows = self.auditor.audit(self.validator.validate(self.dataset.rows))
