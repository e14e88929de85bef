from abc import ABC, abstractmethod
from typing import Any

from docpreview.core.exceptions import AppError, LocalProcessingError
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseService(ABC):
    """Base class for pipeline stages.

    ``execute`` is the outermost boundary of a stage: known application errors
    pass through untouched, anything else is logged with its stack and
    re-raised as a ``LocalProcessingError``.
    """

    def __init__(self):
        self.logger = LOGGER

    async def execute(self, *args, **kwargs) -> Any:
        """Validate input, then run the stage.

        Raises:
            AppError: If execution fails
        """
        try:
            self.validate(*args, **kwargs)
            return await self.run(*args, **kwargs)

        except AppError:
            raise

        except Exception as e:
            self.logger.error(
                f"Service execution failed: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__, **self.log_context(*args, **kwargs)},
            )
            raise LocalProcessingError(f"{self.__class__.__name__} failed: {str(e)}", original_error=e) from e

    def validate(self, *args, **kwargs):
        """Validate service input. Override to add checks.

        Raises:
            ValidationError: If input is invalid
        """
        pass

    def log_context(self, *args, **kwargs) -> dict:
        """Identifiers attached to failure logs."""
        return {
            key: str(value)
            for key, value in kwargs.items()
            if key in ("document_id", "version_id", "team_id")
        }

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        """Run the core stage logic. Must be implemented by subclasses."""
        pass
