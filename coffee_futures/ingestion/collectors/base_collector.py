"""Abstract base class for all data source collectors.

Collectors talk to one external source each and hand back validated,
in-memory values. Persistence and aggregation belong to the pipeline.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from coffee_futures.shared.utils import setup_logger


class BaseCollector(ABC):
    """Base class for all data collectors.

    Subclasses must define:
        SOURCE_NAME (str): identifier used in logs and reports.

    Subclasses must implement:
        collect(): fetch the current value(s) from the source.
        health_check(): verify the source is reachable.
    """

    SOURCE_NAME: str

    def __init__(self, log_file: Path | None = None) -> None:
        """Initialize the collector.

        Args:
            log_file: Optional path for file-based logging.
        """
        self.logger = setup_logger(self.__class__.__name__, log_file)

    @abstractmethod
    def collect(self, *args: Any, **kwargs: Any) -> Any:
        """Collect the current data from the source."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Verify the data source is reachable and responding.

        Returns:
            True if the source is available, False otherwise.
        """
        ...
