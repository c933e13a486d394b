"""Error taxonomy for the price ingestion pipeline."""


class PipelineError(Exception):
    """Base class for ingestion failures.

    Attributes:
        instrument: Instrument code the failure belongs to, when known.
    """

    def __init__(self, message: str, instrument: str | None = None) -> None:
        super().__init__(message)
        self.instrument = instrument


class ExtractionError(PipelineError):
    """Source unreachable, timed out, malformed, or without an active contract."""


class ConversionFailure(PipelineError):
    """Rate service failure. Absorbed by the rate collector, never propagated."""


class PersistenceError(PipelineError):
    """Store unreachable, constraint violation, or missing record."""


class AggregationError(PipelineError):
    """Historical data that cannot be aggregated (e.g. non-numeric prices)."""
