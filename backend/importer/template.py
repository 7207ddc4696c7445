"""CSV template export.

Produces a header row of field labels and, optionally, one example row so
users can fill in a file the importer will map without manual selection.
"""

import csv
import io
import json
from datetime import date, datetime
from typing import Any, Sequence

from .models import FieldSpec, FieldType

DEFAULT_EXAMPLES = {
    FieldType.STRING: "Example Text",
    FieldType.NUMBER: "123",
    FieldType.BOOLEAN: "true",
    FieldType.EMAIL: "example@email.com",
    FieldType.DATE: "2024-01-01",
}


def example_as_text(value: Any) -> str:
    """Render an example value as a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value)
    return str(value)


def generate_csv_template(fields: Sequence[FieldSpec], include_example_row: bool = True) -> str:
    """Build CSV template text for `fields`.

    Args:
        fields: Declared target fields, in column order
        include_example_row: Whether to add one row of example values

    Returns:
        CSV text with ``\\n`` line endings
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")

    writer.writerow([field.label for field in fields])
    if include_example_row:
        writer.writerow(
            [
                example_as_text(field.example)
                if field.example is not None
                else DEFAULT_EXAMPLES[field.type]
                for field in fields
            ]
        )

    return buffer.getvalue()
