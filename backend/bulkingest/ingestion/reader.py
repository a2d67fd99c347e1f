"""Streaming CSV source.

Reads the uploaded file in fixed-size byte chunks and yields one dict per
data row as soon as the row is complete, so a multi-gigabyte upload never
sits in memory. Parsing is best-effort: blank lines, malformed rows and
rows larger than the size cap are skipped, never fatal. I/O errors are
not caught here.
"""

from __future__ import annotations

import asyncio
import codecs
import csv
import logging
from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import chardet

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
DEFAULT_MAX_ROW_BYTES = 1024 * 1024


def detect_encoding(raw_bytes: bytes) -> str:
    """Detect the encoding of raw bytes using chardet.

    Returns a safe encoding string. Falls back to 'utf-8' if detection fails.
    """
    if raw_bytes[:3] == codecs.BOM_UTF8:
        return "utf-8-sig"

    result = chardet.detect(raw_bytes)
    encoding = result.get("encoding")
    if encoding is None:
        return "utf-8"
    enc_lower = encoding.lower()
    if enc_lower in ("ascii", "utf-8", "utf8"):
        return "utf-8"
    return encoding


def _ends_in_quotes(line: str, in_quotes: bool) -> bool:
    """Whether a quoted field is still open at the end of `line`.

    Follows the csv module's rules: a quote opens a field only as the
    field's first character, and inside a quoted field a doubled quote is
    literal while a single one closes the field. A stray quote in an
    unquoted field (O"Brien) is plain text.
    """
    if '"' not in line:
        return in_quotes

    at_field_start = not in_quotes
    i, n = 0, len(line)
    while i < n:
        c = line[i]
        if in_quotes:
            if c == '"':
                if i + 1 < n and line[i + 1] == '"':
                    i += 1
                else:
                    in_quotes = False
        elif c == '"' and at_field_start:
            in_quotes = True
            at_field_start = False
        else:
            at_field_start = c == ","
        i += 1
    return in_quotes


class CSVStreamReader:
    """Async iterator over the data rows of a comma-separated file.

    The first non-blank row is the header. Each following row is returned
    as {header: value}; short rows omit the missing keys and surplus values
    are kept under "_<index>" keys.

    Attributes:
        column_names: Header names, once the header row has been read.
        rows_read: Data rows yielded so far.
        skipped_rows: Rows dropped as malformed or oversized.
    """

    def __init__(
        self,
        path: Path,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_row_bytes: int = DEFAULT_MAX_ROW_BYTES,
    ) -> None:
        self._path = Path(path)
        self._chunk_size = chunk_size
        self._max_row_bytes = max_row_bytes
        self._pending: list[str] = []
        self._pending_bytes = 0
        self._in_quotes = False
        self._discarding = False
        self.encoding: str | None = None
        self.column_names: list[str] | None = None
        self.rows_read = 0
        self.skipped_rows = 0

    def __aiter__(self) -> AsyncIterator[dict[str, str]]:
        return self._rows()

    async def _chunks(self) -> AsyncIterator[bytes]:
        with self._path.open("rb") as fh:
            while True:
                chunk = await asyncio.to_thread(fh.read, self._chunk_size)
                if not chunk:
                    return
                yield chunk

    async def _rows(self) -> AsyncIterator[dict[str, str]]:
        decoder: codecs.IncrementalDecoder | None = None
        tail = ""

        async for chunk in self._chunks():
            if decoder is None:
                self.encoding = detect_encoding(chunk)
                decoder = codecs.getincrementaldecoder(self.encoding)(errors="replace")

            lines = (tail + decoder.decode(chunk)).split("\n")
            tail = lines.pop()
            for line in lines:
                for row in self._feed(line + "\n"):
                    yield row

        if decoder is not None:
            tail += decoder.decode(b"", final=True)
        if tail:
            for row in self._feed(tail):
                yield row
        if self._pending:
            # Unterminated quoted field at end of input.
            for row in self._complete_row():
                yield row

        if self.skipped_rows:
            logger.info("Skipped %d malformed or oversized rows in %s", self.skipped_rows, self._path.name)

    def _reset_pending(self) -> None:
        self._pending = []
        self._pending_bytes = 0
        self._in_quotes = False

    def _feed(self, line: str) -> Iterator[dict[str, str]]:
        """Accumulate one physical line; yield a row once it is complete."""
        self._in_quotes = _ends_in_quotes(line, self._in_quotes)

        if self._discarding:
            # Rest of an oversized row: drop lines until its quoting closes.
            if not self._in_quotes:
                self._discarding = False
            return

        self._pending.append(line)
        self._pending_bytes += len(line.encode("utf-8"))
        if self._pending_bytes > self._max_row_bytes:
            logger.debug("Dropping row over %d bytes", self._max_row_bytes)
            self.skipped_rows += 1
            self._pending = []
            self._pending_bytes = 0
            self._discarding = self._in_quotes
            return
        if self._in_quotes:
            return
        yield from self._complete_row()

    def _complete_row(self) -> Iterator[dict[str, str]]:
        lines = self._pending
        self._reset_pending()

        if not "".join(lines).strip():
            return
        reader = csv.reader(lines, strict=True)
        while True:
            try:
                values = next(reader)
            except StopIteration:
                return
            except csv.Error:
                self.skipped_rows += 1
                continue
            if not values:
                continue

            if self.column_names is None:
                self.column_names = [name.strip().lstrip("\ufeff") for name in values]
                continue

            row = dict(zip(self.column_names, values))
            for index in range(len(self.column_names), len(values)):
                row[f"_{index}"] = values[index]
            self.rows_read += 1
            yield row
