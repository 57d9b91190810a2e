from collections.abc import Callable, Mapping, Sequence
from dataclasses import asdict, is_dataclass
import logging
from typing import Any, Protocol

from sqlalchemy import Engine, text
from sqlalchemy.exc import SQLAlchemyError

from batchflow.errors import ConfigurationError, SinkError


logger = logging.getLogger(__name__)


class RecordSink(Protocol):
    name: str

    def write(self, items: Sequence[Any]) -> None: ...


def bean_params(item: Any) -> dict[str, Any]:
    """Bind parameters from an item's named fields."""
    if is_dataclass(item) and not isinstance(item, type):
        return asdict(item)
    if isinstance(item, Mapping):
        return dict(item)
    return dict(vars(item))


class SqlBatchSink:
    """Writes each chunk with one parameterized statement in one transaction.

    The statement is compiled once from ``sql``; every item is bound to it via
    ``item_params`` and the whole batch is sent as an executemany. A failure
    anywhere in the batch rolls the transaction back, so nothing from the
    chunk is stored.
    """

    def __init__(
        self,
        engine: Engine,
        sql: str,
        *,
        item_params: Callable[[Any], Mapping[str, Any]] = bean_params,
        name: str = "sql_batch_sink",
    ) -> None:
        if not sql or not sql.strip():
            raise ConfigurationError("a SQL statement is required", sink=name)
        self.engine = engine
        self.statement = text(sql)
        self.item_params = item_params
        self.name = name

    def write(self, items: Sequence[Any]) -> None:
        if not items:
            return

        params = [dict(self.item_params(item)) for item in items]
        try:
            with self.engine.begin() as connection:
                connection.execute(self.statement, params)
        except SQLAlchemyError as exc:
            raise SinkError(
                f"batch write failed: {exc.__class__.__name__}",
                sink=self.name,
                batch_size=len(items),
            ) from exc

        logger.debug("chunk written", extra={"sink": self.name, "batch_size": len(items)})
