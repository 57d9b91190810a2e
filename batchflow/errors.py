class BatchError(Exception):
    """Base class for engine errors; ``context`` carries diagnostic fields."""

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = {key: value for key, value in context.items() if value is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"


class ConfigurationError(BatchError):
    pass


class SourceNotOpenError(BatchError):
    pass


class ParseError(BatchError):
    """A source line could not be split or mapped into a record."""

    def __init__(self, message: str, *, line_number: int | None = None, line: str | None = None, **context: object):
        super().__init__(message, line_number=line_number, line=line, **context)
        self.line_number = line_number
        self.line = line


class TransformError(BatchError):
    pass


class SinkError(BatchError):
    pass


class DuplicateExecutionError(BatchError):
    """Raised when parameters of an already completed job execution are reused."""


class StepFailedError(BatchError):
    def __init__(self, step_name: str, cause: Exception, *, record_offset: int | None = None) -> None:
        super().__init__(
            f"step '{step_name}' failed: {cause}",
            step_name=step_name,
            record_offset=record_offset,
        )
        self.step_name = step_name
        self.record_offset = record_offset
        self.cause = cause
