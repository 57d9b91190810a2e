from pathlib import Path

import pytest

from batchflow.errors import ConfigurationError, ParseError, SourceNotOpenError
from batchflow.import_job import Person
from batchflow.sources import DelimitedFileSource, IterableSource


def test_reads_mapped_records_in_file_order(tmp_path: Path) -> None:
    path = tmp_path / "people.csv"
    path.write_text("Jill,Doe\n\nJoe , Doe\n", encoding="utf-8")

    with DelimitedFileSource(path, names=("first_name", "last_name"), target_type=Person) as source:
        records = list(source)

    assert records == [Person("Jill", "Doe"), Person("Joe", "Doe")]


def test_raw_records_are_read_only_mappings(tmp_path: Path) -> None:
    path = tmp_path / "people.csv"
    path.write_text("header_a,header_b\nJill,Doe\n", encoding="utf-8")

    source = DelimitedFileSource(path, names=("first_name", "last_name"), lines_to_skip=1)
    source.open()
    try:
        record = source.read()
        assert dict(record) == {"first_name": "Jill", "last_name": "Doe"}
        with pytest.raises(TypeError):
            record["first_name"] = "Jack"
        assert source.read() is None
    finally:
        source.close()


def test_wrong_column_count_raises_parse_error_with_line_number(tmp_path: Path) -> None:
    path = tmp_path / "people.csv"
    path.write_text("Jill,Doe\nJoe,Doe,extra\n", encoding="utf-8")

    with DelimitedFileSource(path, names=("first_name", "last_name")) as source:
        assert source.read() is not None
        with pytest.raises(ParseError) as exc_info:
            source.read()

    assert exc_info.value.line_number == 2
    assert "expected 2 fields" in str(exc_info.value)


def test_undecodable_bytes_raise_parse_error_on_their_line(tmp_path: Path) -> None:
    path = tmp_path / "people.csv"
    path.write_bytes(b"Jill,Doe\n\xff\xfe,Doe\n")

    with DelimitedFileSource(path, names=("first_name", "last_name")) as source:
        assert source.read()["first_name"] == "Jill"
        with pytest.raises(ParseError) as exc_info:
            source.read()

    assert exc_info.value.line_number == 2
    assert "invalid utf-8 input" in str(exc_info.value)


def test_mapping_failure_raises_parse_error(tmp_path: Path) -> None:
    path = tmp_path / "people.csv"
    path.write_text("Jill,Doe\n", encoding="utf-8")

    with DelimitedFileSource(path, names=("given", "family"), target_type=Person) as source:
        with pytest.raises(ParseError):
            source.read()


def test_read_before_open_is_rejected(tmp_path: Path) -> None:
    source = DelimitedFileSource(tmp_path / "people.csv", names=("first_name",))

    with pytest.raises(SourceNotOpenError):
        source.read()


def test_missing_file_fails_on_open(tmp_path: Path) -> None:
    source = DelimitedFileSource(tmp_path / "missing.csv", names=("first_name",))

    with pytest.raises(FileNotFoundError):
        source.open()


def test_handle_released_when_consumer_errors(tmp_path: Path) -> None:
    path = tmp_path / "people.csv"
    path.write_text("Jill,Doe\n", encoding="utf-8")
    source = DelimitedFileSource(path, names=("first_name", "last_name"))

    with pytest.raises(RuntimeError):
        with source:
            source.read()
            raise RuntimeError("consumer blew up")

    assert source._handle is None


def test_duplicate_field_names_are_a_configuration_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigurationError):
        DelimitedFileSource(tmp_path / "people.csv", names=("name", "name"))


def test_iterable_source_freezes_dict_records() -> None:
    with IterableSource([{"a": 1}, {"a": 2}]) as source:
        first = source.read()
        with pytest.raises(TypeError):
            first["a"] = 3
        assert source.read()["a"] == 2
        assert source.read() is None
