"""Import Session Orchestrator.

Wires parsing, mapping, validation and the row-state manager into one flow
for a fixed set of target fields.
"""

from typing import Dict, List, Mapping, Optional, Sequence, Union

import structlog
from pydantic import BaseModel, Field

from backend.parsers import tabular_csv
from shared.config.settings import settings

from .mapper import ColumnMapper, map_row
from .models import (
    ColumnMapping,
    CustomFieldPolicy,
    Dataset,
    FieldSpec,
    ParsedTable,
    Row,
    Source,
)
from .state import RowStateManager
from .template import generate_csv_template

logger = structlog.get_logger(__name__)


class ImportConfig(BaseModel):
    """Per-session importer configuration."""

    max_rows: int = Field(default=1000, gt=0, description="Maximum data rows per file")
    max_file_size_bytes: int = Field(default=2 * 1024 * 1024, gt=0)
    delimiter: str = Field(default=",", min_length=1)
    encoding: Optional[str] = Field(None, description="File encoding (auto-detect if None)")
    dynamic_typing: bool = True
    show_empty_fields: bool = True
    chunk_size: int = Field(default=500, gt=0)
    enable_custom_fields: bool = False
    custom_field_return_type: CustomFieldPolicy = CustomFieldPolicy.NESTED_OBJECT

    @classmethod
    def from_settings(cls) -> "ImportConfig":
        """Build a config from the environment-driven settings."""
        return cls(
            max_rows=settings.max_rows,
            max_file_size_bytes=settings.max_file_size_bytes,
            show_empty_fields=settings.show_empty_fields,
            chunk_size=settings.chunk_size,
            enable_custom_fields=settings.enable_custom_fields,
            custom_field_return_type=settings.custom_field_return_type,
        )


Selections = Mapping[str, Optional[str]]


class ImportSession:
    """One import flow over a declared set of fields.

    Parse -> map -> validate -> uniqueness audit, ending in a RowStateManager
    that owns the rows through edits and finalize.
    """

    def __init__(self, fields: Sequence[FieldSpec], config: Optional[ImportConfig] = None):
        """Initialize the session.

        Args:
            fields: Declared target fields
            config: Session configuration (built from settings if None)

        Raises:
            DuplicateFieldError: If two fields share a key
        """
        self.config = config or ImportConfig.from_settings()
        self.fields = list(fields)
        self.mapper = ColumnMapper(self.fields, self.config.enable_custom_fields)
        self.parser = tabular_csv.TabularCSVParser(
            max_rows=self.config.max_rows,
            max_file_size_bytes=self.config.max_file_size_bytes,
            delimiter=self.config.delimiter,
            encoding=self.config.encoding,
            dynamic_typing=self.config.dynamic_typing,
            show_empty_fields=self.config.show_empty_fields,
            chunk_size=self.config.chunk_size,
        )
        self.logger = logger.bind(component="ImportSession")

    def parse(self, source: Source) -> ParsedTable:
        return self.parser.parse(source)

    def suggest_mappings(self, columns: Sequence[str]) -> List[ColumnMapping]:
        return self.mapper.suggest(columns)

    def build_mappings(self, columns: Sequence[str], selections: Selections) -> List[ColumnMapping]:
        return self.mapper.build(columns, selections)

    def load(self, table: ParsedTable, mappings: Sequence[ColumnMapping]) -> RowStateManager:
        """Map and validate a parsed table.

        Args:
            table: Output of `parse`
            mappings: One directive per source column

        Returns:
            RowStateManager holding the validated rows

        Raises:
            ConfigError: If the mapping set is invalid
        """
        self.mapper.validate(mappings)

        rows = [
            Row(index=index, fields=map_row(raw, mappings))
            for index, raw in enumerate(table.rows)
        ]
        dataset = Dataset(rows=rows, fields=self.fields, mappings=list(mappings))
        manager = RowStateManager(dataset)

        self.logger.info("Dataset loaded", **manager.summary())
        return manager

    def run(
        self,
        source: Source,
        mappings: Union[Sequence[ColumnMapping], Selections, None] = None,
    ) -> RowStateManager:
        """Parse `source` and load it.

        Args:
            source: Path, raw bytes, or an open file
            mappings: ColumnMappings, a column selection map, or None to use
                suggested mappings

        Returns:
            RowStateManager holding the validated rows
        """
        table = self.parse(source)

        if mappings is None:
            resolved = self.suggest_mappings(table.columns)
        elif isinstance(mappings, Mapping):
            resolved = self.build_mappings(table.columns, mappings)
        else:
            resolved = list(mappings)

        return self.load(table, resolved)

    def template(self, include_example_row: bool = True) -> str:
        return generate_csv_template(self.fields, include_example_row)

    def finalize(self, manager: RowStateManager) -> List[Dict]:
        """Finalize `manager` with this session's custom-field policy."""
        policy = self.config.custom_field_return_type if self.config.enable_custom_fields else None
        return manager.finalize(policy)
