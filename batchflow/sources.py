"""Record sources: lazy, finite readers that hand the step one record at a time."""

from collections.abc import Callable, Iterable, Iterator, Sequence
import csv
import logging
from pathlib import Path
from types import MappingProxyType
from typing import IO, Any, Protocol

from batchflow.errors import ConfigurationError, ParseError, SourceNotOpenError


logger = logging.getLogger(__name__)


class RecordSource(Protocol):
    name: str

    def open(self) -> None: ...

    def read(self) -> Any | None: ...

    def close(self) -> None: ...


class _ScopedSource:
    """Context-manager plumbing shared by sources; ``close`` always runs."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[Any]:
        while True:
            record = self.read()
            if record is None:
                return
            yield record


class DelimitedFileSource(_ScopedSource):
    """Reads a delimited flat file, mapping columns positionally onto ``names``.

    Without ``target_type`` each record is a read-only mapping of name to
    stripped string value. With ``target_type`` the fields are passed to it as
    keyword arguments, so a dataclass whose field names match ``names`` works
    directly.
    """

    def __init__(
        self,
        path: str | Path,
        names: Sequence[str],
        *,
        delimiter: str = ",",
        target_type: Callable[..., Any] | None = None,
        lines_to_skip: int = 0,
        encoding: str = "utf-8",
        name: str | None = None,
    ) -> None:
        if not names:
            raise ConfigurationError("a delimited source needs at least one field name", path=str(path))
        if len(set(names)) != len(names):
            raise ConfigurationError("field names must be unique", names=list(names))
        if lines_to_skip < 0:
            raise ConfigurationError("lines_to_skip must not be negative", lines_to_skip=lines_to_skip)

        self.path = Path(path)
        self.names = tuple(names)
        self.delimiter = delimiter
        self.target_type = target_type
        self.lines_to_skip = lines_to_skip
        self.encoding = encoding
        self.name = name or self.path.stem
        self._handle: IO[bytes] | None = None
        self._reader: Iterator[list[str]] | None = None
        self._csv_reader = None
        self._physical_line = 0

    def open(self) -> None:
        if self._handle is not None:
            return
        if not self.path.exists():
            raise FileNotFoundError(f"input file not found: {self.path}")

        self._handle = self.path.open("rb")
        self._physical_line = 0
        self._csv_reader = csv.reader(self._decoded_lines(self._handle), delimiter=self.delimiter)
        self._reader = iter(self._csv_reader)
        for _ in range(self.lines_to_skip):
            if next(self._reader, None) is None:
                break
        logger.debug("opened delimited source", extra={"source": self.name, "path": str(self.path)})

    def read(self) -> Any | None:
        if self._reader is None:
            raise SourceNotOpenError("source must be opened before reading", source=self.name)

        try:
            for row in self._reader:
                if not row or all(not value.strip() for value in row):
                    continue
                return self._map_row(row)
        except csv.Error as exc:
            raise ParseError(str(exc), line_number=self._line_number(), source=self.name) from exc
        return None

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
        self._handle = None
        self._reader = None
        self._csv_reader = None

    def _decoded_lines(self, handle: IO[bytes]) -> Iterator[str]:
        # one line decoded at a time; csv.reader never receives an undecodable line
        for raw in handle:
            self._physical_line += 1
            try:
                yield raw.decode(self.encoding)
            except UnicodeDecodeError as exc:
                raise ParseError(
                    f"invalid {self.encoding} input: {exc.reason}",
                    line_number=self._physical_line,
                    source=self.name,
                ) from exc

    def _line_number(self) -> int | None:
        return self._csv_reader.line_num if self._csv_reader is not None else None

    def _map_row(self, row: list[str]) -> Any:
        line_number = self._line_number()
        if len(row) != len(self.names):
            raise ParseError(
                f"expected {len(self.names)} fields but found {len(row)}",
                line_number=line_number,
                line=self.delimiter.join(row),
                source=self.name,
            )

        fields = {name: value.strip() for name, value in zip(self.names, row)}
        if self.target_type is None:
            return MappingProxyType(fields)

        try:
            return self.target_type(**fields)
        except (TypeError, ValueError) as exc:
            raise ParseError(
                f"cannot map fields onto {getattr(self.target_type, '__name__', self.target_type)}: {exc}",
                line_number=line_number,
                line=self.delimiter.join(row),
                source=self.name,
            ) from exc


class IterableSource(_ScopedSource):
    """Serves records from an in-memory iterable; ``None`` items are not allowed."""

    def __init__(self, items: Iterable[Any], *, name: str = "iterable") -> None:
        self.items = items
        self.name = name
        self._iterator: Iterator[Any] | None = None

    def open(self) -> None:
        if self._iterator is None:
            self._iterator = iter(self.items)

    def read(self) -> Any | None:
        if self._iterator is None:
            raise SourceNotOpenError("source must be opened before reading", source=self.name)
        record = next(self._iterator, None)
        if isinstance(record, dict):
            return MappingProxyType(record)
        return record

    def close(self) -> None:
        self._iterator = None
