"""Streaming CSV reader for the tabular importer.

Reads a single delimited file with a header row into loosely-typed records:

- Header cells are trimmed; blank header cells get a positional name
  (``Field 1``, ``Field 2`` ...) and repeated names get a numeric suffix
- Records are consumed in bounded chunks so the row cap stops the read early
- Going over the row cap is a hard failure, never a silent truncation
- Cells that are canonical integer/decimal literals become numbers, the rest
  stay text
"""

import io
import os
import re
from pathlib import Path
from typing import IO, Any, Dict, Iterator, List, Optional, Tuple

import chardet
import pandas as pd
import structlog

from backend.importer.exceptions import (
    FileTooLargeError,
    MalformedInputError,
    RowLimitExceededError,
)
from backend.importer.models import ParsedTable, Source
from shared.config.settings import settings

logger = structlog.get_logger(__name__)

_CANONICAL_INT_RE = re.compile(r"^(?:0|-?[1-9]\d*)$")
_CANONICAL_FLOAT_RE = re.compile(r"^-?(?:0|[1-9]\d*)\.\d+$")


def infer_scalar(text: str) -> Any:
    """Turn canonical numeric literals into numbers; leave everything else as text.

    Only literals that print back exactly as they were read are converted, so
    values like ``007`` or ``1.50`` keep their original spelling.
    """
    if _CANONICAL_INT_RE.match(text):
        return int(text)
    if _CANONICAL_FLOAT_RE.match(text):
        number = float(text)
        if repr(number) == text:
            return number
    return text


def normalize_header(cells: List[Any]) -> List[str]:
    """Trim header cells, name blank ones by position and de-duplicate."""
    columns: List[str] = []
    seen: Dict[str, int] = {}
    for i, cell in enumerate(cells):
        name = _cell_text(cell).strip() or f"Field {i + 1}"
        if name in seen:
            seen[name] += 1
            candidate = f"{name}_{seen[name]}"
            while candidate in seen:
                seen[name] += 1
                candidate = f"{name}_{seen[name]}"
            name = candidate
        seen.setdefault(name, 0)
        columns.append(name)
    return columns


def _cell_text(cell: Any) -> str:
    # short records come back from pandas padded with NaN
    if cell is None or (isinstance(cell, float) and cell != cell):
        return ""
    return str(cell)


class TabularCSVParser:
    """Row-capped CSV parser producing a ParsedTable."""

    def __init__(
        self,
        max_rows: Optional[int] = None,
        max_file_size_bytes: Optional[int] = None,
        delimiter: str = ",",
        encoding: Optional[str] = None,
        dynamic_typing: bool = True,
        show_empty_fields: Optional[bool] = None,
        chunk_size: Optional[int] = None,
    ):
        """Initialize the parser.

        Args:
            max_rows: Default row cap (settings value if None)
            max_file_size_bytes: Byte size cap (settings value if None)
            delimiter: Column delimiter
            encoding: File encoding (auto-detect if None)
            dynamic_typing: Whether numeric literals become numbers
            show_empty_fields: Keep columns that are blank in every row
            chunk_size: Records read per chunk
        """
        self.max_rows = settings.max_rows if max_rows is None else max_rows
        self.max_file_size_bytes = (
            settings.max_file_size_bytes if max_file_size_bytes is None else max_file_size_bytes
        )
        self.delimiter = delimiter
        self.encoding = encoding
        self.dynamic_typing = dynamic_typing
        self.show_empty_fields = (
            settings.show_empty_fields if show_empty_fields is None else show_empty_fields
        )
        self.chunk_size = chunk_size or settings.chunk_size
        self.logger = logger.bind(parser="tabular_csv")

    def parse(self, source: Source, limit: Optional[int] = None) -> ParsedTable:
        """Parse a CSV source.

        Args:
            source: Path, raw bytes, or an open text/binary file
            limit: Maximum number of data rows (parser default if None)

        Returns:
            ParsedTable with rows keyed by normalized column names

        Raises:
            FileTooLargeError: If the source is larger than the byte cap
            RowLimitExceededError: If the source has more than `limit` data rows
            MalformedInputError: If the source cannot be read as CSV
        """
        limit = self.max_rows if limit is None else limit
        if limit < 0:
            raise ValueError("limit must not be negative")

        self._check_size(source)
        handle, encoding = self._open(source)
        self.logger.info("Parsing CSV input", limit=limit, encoding=encoding)

        try:
            columns, rows = self._consume(handle, encoding, limit)
        except RowLimitExceededError:
            self.logger.warning("Row limit exceeded, aborting parse", limit=limit)
            raise
        except pd.errors.EmptyDataError as e:
            raise MalformedInputError("file has no header row") from e
        except pd.errors.ParserError as e:
            raise MalformedInputError(str(e).strip()) from e
        except UnicodeDecodeError as e:
            raise MalformedInputError(f"cannot decode input as {encoding}: {e.reason}") from e
        except OSError as e:
            raise MalformedInputError(f"failed to read input: {e}") from e
        finally:
            if isinstance(source, (str, Path)):
                handle.close()

        if not columns:
            raise MalformedInputError("file has no header row")

        if not self.show_empty_fields:
            columns, rows = self._drop_empty_columns(columns, rows)

        self.logger.info("Parsed CSV input", rows=len(rows), columns=len(columns))
        return ParsedTable(
            rows=rows,
            columns=columns,
            encoding=encoding,
            delimiter=self.delimiter,
        )

    def _consume(
        self, handle: IO, encoding: Optional[str], limit: int
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        """Read records until EOF, stopping the moment row `limit` would be kept."""
        columns: List[str] = []
        rows: List[Dict[str, Any]] = []

        for record in self._records(handle, encoding):
            if not columns:
                columns = normalize_header(record)
                continue
            if len(rows) >= limit:
                raise RowLimitExceededError(limit)
            rows.append(self._to_row(columns, record))

        return columns, rows

    def _records(self, handle: IO, encoding: Optional[str]) -> Iterator[Tuple[Any, ...]]:
        read_kwargs: Dict[str, Any] = {
            "sep": self.delimiter,
            "header": None,
            "dtype": str,
            "keep_default_na": False,
            "na_filter": False,
            "skip_blank_lines": True,
            "chunksize": self.chunk_size,
            "engine": "c",
        }
        if encoding:
            read_kwargs["encoding"] = encoding

        with pd.read_csv(handle, **read_kwargs) as reader:
            for chunk in reader:
                yield from chunk.itertuples(index=False, name=None)

    def _to_row(self, columns: List[str], record: Tuple[Any, ...]) -> Dict[str, Any]:
        row: Dict[str, Any] = {}
        for i, column in enumerate(columns):
            text = _cell_text(record[i]) if i < len(record) else ""
            row[column] = infer_scalar(text) if self.dynamic_typing else text
        return row

    def _drop_empty_columns(
        self, columns: List[str], rows: List[Dict[str, Any]]
    ) -> Tuple[List[str], List[Dict[str, Any]]]:
        kept = [c for c in columns if any(_cell_text(r.get(c)).strip() for r in rows)]
        if len(kept) == len(columns):
            return columns, rows
        self.logger.info("Dropping empty columns", columns=[c for c in columns if c not in kept])
        return kept, [{c: r[c] for c in kept} for r in rows]

    def _check_size(self, source: Source) -> None:
        size: Optional[int] = None
        if isinstance(source, (str, Path)):
            try:
                size = os.path.getsize(source)
            except OSError as e:
                raise MalformedInputError(f"failed to read input: {e}") from e
        elif isinstance(source, (bytes, bytearray)):
            size = len(source)
        elif hasattr(source, "seek") and getattr(source, "seekable", lambda: False)():
            position = source.tell()
            source.seek(0, io.SEEK_END)
            size = source.tell() - position
            source.seek(position)

        if size is not None and size > self.max_file_size_bytes:
            self.logger.warning(
                "Input exceeds size limit", size=size, limit=self.max_file_size_bytes
            )
            raise FileTooLargeError(self.max_file_size_bytes, size)

    def _open(self, source: Source) -> Tuple[IO, Optional[str]]:
        """Return a readable handle and the encoding pandas should decode with."""
        if isinstance(source, (str, Path)):
            handle: IO = open(source, "rb")
        elif isinstance(source, (bytes, bytearray)):
            handle = io.BytesIO(source)
        else:
            handle = source

        if isinstance(handle, io.TextIOBase):
            return handle, None

        encoding = self.encoding
        if not encoding:
            encoding = self.detect_encoding(handle)
        return handle, encoding

    def detect_encoding(self, handle: IO) -> str:
        """Detect encoding from the first 10KB using chardet."""
        if not (hasattr(handle, "seek") and getattr(handle, "seekable", lambda: False)()):
            return "utf-8-sig"

        position = handle.tell()
        sample = handle.read(10240)
        handle.seek(position)

        result = chardet.detect(sample) if sample else {"encoding": None, "confidence": 0.0}
        encoding = (result.get("encoding") or "").lower()
        confidence = result.get("confidence") or 0.0

        self.logger.debug("Detected encoding", encoding=encoding, confidence=confidence)

        # ascii is a subset of utf-8; utf-8-sig also strips a BOM
        if not encoding or encoding in ("ascii", "utf-8", "utf-8-sig") or confidence < 0.7:
            return "utf-8-sig"
        return encoding


def parse_csv(source: Source, limit: Optional[int] = None, **kwargs: Any) -> ParsedTable:
    """Parse `source` with a one-off TabularCSVParser.

    Args:
        source: Path, raw bytes, or an open file
        limit: Row cap (settings value if None)
        **kwargs: TabularCSVParser options

    Returns:
        ParsedTable
    """
    return TabularCSVParser(**kwargs).parse(source, limit=limit)
