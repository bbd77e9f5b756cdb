import logging


# Library logger - no configuration, user controls output
logger = logging.getLogger(__name__)


class CollocLabBaseError(Exception):
    """
    Base class for all CollocLab-specific errors.

    All CollocLab exceptions inherit from this class, allowing users to catch
    any CollocLab-specific error with a single except clause.

    Args:
        message: The error message describing what went wrong
        context: Optional additional context about where the error occurred
    """

    def __init__(self, message: str, context: str | None = None) -> None:
        self.message = message
        self.context = context

        # Library logs at DEBUG level - user can promote if needed
        logger.debug("CollocLab exception: %s", self._format_message())
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the error message with optional context."""
        if self.context:
            return f"{self.message} (Context: {self.context})"
        return self.message


class ConfigurationError(CollocLabBaseError):
    """
    Raised when a segment, basis or constraint is configured inconsistently.

    These are programming errors detected while the expression graph is being
    built. There is no safe partial state for a malformed graph, so the build
    is aborted.

    Examples:
        - Polynomial degree outside (0, 10)
        - Non-positive knot width
        - Integration, dynamics or cost functions with the wrong signature
        - Interpolation requested outside [0, 1]
        - Constraint bounds whose size does not match the constraint function
    """

    pass


class DataIntegrityError(CollocLabBaseError):
    """
    Raised when internal data corruption or inconsistency is detected.

    Examples:
        - Expression graph requested before decision variables were declared
        - NaN or infinite values in numeric bounds or initial guesses
        - Mismatched array dimensions in internal calculations
    """

    pass


class ContactSequenceError(ConfigurationError):
    """
    Raised when a contact-phase lookup has no covering phase.

    Requesting a knot or phase index outside the contact sequence is an
    inconsistent problem definition and cannot be recovered from.
    """

    pass


class SolutionExtractionError(CollocLabBaseError):
    """
    Raised when solution data cannot be extracted from the optimization result.

    This exception occurs when the raw solver vector cannot be mapped back onto
    the segments through their recorded index ranges.
    """

    pass
