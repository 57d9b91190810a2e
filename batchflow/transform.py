from collections.abc import Callable
from typing import Any, Final


class _Skip:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SKIP"

    def __bool__(self) -> bool:
        return False


# Returned by a transformer to drop a record before it reaches the sink.
SKIP: Final = _Skip()

RecordTransformer = Callable[[Any], Any]


def passthrough(record: Any) -> Any:
    return record


def compose(*transformers: RecordTransformer) -> RecordTransformer:
    """Chain transformers left to right, stopping at the first ``SKIP`` or ``None``."""
    if not transformers:
        return passthrough

    def composed(record: Any) -> Any:
        for transformer in transformers:
            record = transformer(record)
            if record is SKIP or record is None:
                return SKIP
        return record

    return composed
