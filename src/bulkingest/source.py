"""Streaming row source over a delimited text file."""

import csv
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from bulkingest.errors import ParseError

logger = logging.getLogger(__name__)


def _decodes(text: str) -> bool:
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


@dataclass(frozen=True)
class ParsedRow:
    """Fields of one data line; `ordinal` is 0-based from the first line after the header."""

    ordinal: int
    fields: tuple[str, ...]


class RowSource:
    """Forward-only reader over a delimited text file.

    Never loads the full file into memory: one physical line is read, parsed and
    handed on at a time. The first line is the header; it is consumed by open()
    and only exposed as `header`. Use as a context manager so the handle is
    released even when the caller stops early.
    """

    def __init__(self, path: str | Path, *, delimiter: str = ",", quotechar: str = '"'):
        self.path = Path(path)
        self._delimiter = delimiter
        self._quotechar = quotechar
        self._file = None
        self.header: tuple[str, ...] = ()

    def open(self) -> "RowSource":
        """Open the file and consume the header. Raises OSError if it cannot be read.

        An undecodable or blank header line is a ParseError with ordinal -1.
        """
        # Undecodable bytes survive as surrogates; parse() rejects those lines.
        self._file = open(self.path, encoding="utf-8", errors="surrogateescape")
        first = self._file.readline()
        if not first:
            logger.warning("%s is empty; no header found", self.path)
            return self
        try:
            if not _decodes(first):
                raise ParseError("invalid encoding in header line", -1, first)
            if not first.strip():
                raise ParseError("empty header line", -1, first)
            try:
                self.header = tuple(self._split(first))
            except csv.Error as e:
                raise ParseError(f"malformed header: {e}", -1, first) from e
        except ParseError:
            self.close()
            raise
        return self

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "RowSource":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _split(self, line: str) -> list[str]:
        reader = csv.reader([line], delimiter=self._delimiter, quotechar=self._quotechar, strict=True)
        return next(reader, [])

    def lines(self) -> Iterator[tuple[int, str]]:
        """Yield `(ordinal, text)` for each data line without parsing it.

        Blank lines use up an ordinal but are not yielded.
        """
        if self._file is None:
            raise RuntimeError("RowSource is not open")
        for ordinal, line in enumerate(self._file):
            if not line.strip():
                continue
            yield ordinal, line

    def parse(self, ordinal: int, line: str) -> ParsedRow | ParseError:
        """Split one data line.

        Invalid UTF-8, bad quoting or a field count unlike the header's is a ParseError.
        """
        if not _decodes(line):
            return ParseError("invalid encoding", ordinal, line)
        try:
            fields = self._split(line)
        except csv.Error as e:
            return ParseError(f"malformed quoting: {e}", ordinal, line)
        if self.header and len(fields) != len(self.header):
            return ParseError(
                f"expected {len(self.header)} fields, got {len(fields)}", ordinal, line
            )
        return ParsedRow(ordinal, tuple(fields))

    def __iter__(self) -> Iterator[ParsedRow | ParseError]:
        for ordinal, line in self.lines():
            yield self.parse(ordinal, line)
