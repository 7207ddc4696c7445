"""Table-wide uniqueness checks.

Runs after per-row validation: for every field in the mapping set carrying a Unique rule,
value frequencies are counted over the whole row set in a single pass and
every row holding a repeated value gets a table-origin diagnostic.
"""

from collections import Counter
from typing import List, Sequence

import structlog

from .models import (
    ColumnMapping,
    Diagnostic,
    DiagnosticOrigin,
    FieldSpec,
    Row,
    unique_key,
)
from .validators import merge_diagnostic

logger = structlog.get_logger(__name__)


class UniquenessAuditor:
    """Flags duplicate values for fields with a Unique rule."""

    def __init__(self, fields: Sequence[FieldSpec], mappings: Sequence[ColumnMapping]):
        mapped_keys = {m.target_key for m in mappings if m.is_active}
        self.constrained = [f for f in fields if f.unique_rules and f.key in mapped_keys]
        self.logger = logger.bind(component="UniquenessAuditor")

    def audit(self, rows: List[Row]) -> List[Row]:
        """Merge duplicate-value diagnostics into `rows`.

        Rows are updated in place and the same list is returned.

        Args:
            rows: Rows already passed through SchemaValidator

        Returns:
            The row list with table diagnostics merged
        """
        flagged = 0

        for spec in self.constrained:
            for rule in spec.unique_rules:
                frequencies = Counter(
                    unique_key(row.fields.get(spec.key))
                    for row in rows
                    if not rule.exempts(row.fields.get(spec.key))
                )
                diagnostic = Diagnostic(
                    message=rule.message,
                    severity=rule.severity,
                    origin=DiagnosticOrigin.TABLE,
                )
                for row in rows:
                    if not rule.evaluate(row.fields.get(spec.key), frequencies):
                        merge_diagnostic(row.diagnostics, spec.key, diagnostic)
                        flagged += 1

        if self.constrained:
            self.logger.info(
                "Uniqueness audit completed",
                rows=len(rows),
                fields=[f.key for f in self.constrained],
                duplicates=flagged,
            )
        return rows
