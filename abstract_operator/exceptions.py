"""
Errors raised by abstract_operator. Fatal errors stop the operator that raised
them. Expected errors only affect the single item being processed.
"""

## Base Error ##################################################################


class OperatorError(Exception):
    """Root of the abstract_operator errors"""

    def __init__(self, message: str, is_fatal_error: bool):
        super().__init__(message)
        self._is_fatal_error = is_fatal_error

    @property
    def is_fatal_error(self) -> bool:
        """True when the operator cannot keep running after this error"""
        return self._is_fatal_error


## Fatal Errors ################################################################


class OperatorFatalError(OperatorError):
    """Failure that leaves the operator unable to continue"""

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=True)


class ConfigError(OperatorFatalError):
    """Invalid operator definition or command line input"""


class ClusterError(OperatorFatalError):
    """A required cluster call did not succeed"""


class WatchEstablishmentError(OperatorFatalError):
    """The watch of an operator could not be opened"""


## Expected Errors #############################################################


class OperatorExpectedError(OperatorError):
    """Failure scoped to one item. The operator keeps running."""

    def __init__(self, message: str = ""):
        super().__init__(message=message, is_fatal_error=False)


class ConversionError(OperatorExpectedError):
    """A raw cluster object does not convert to the operator's entity type"""


## Assertions ##################################################################


def _asserter(error_type: type):
    def assert_condition(condition: bool, message: str = ""):
        if not condition:
            raise error_type(message)

    assert_condition.__doc__ = f"assert() that raises {error_type.__name__}"
    return assert_condition


assert_config = _asserter(ConfigError)
assert_cluster = _asserter(ClusterError)
assert_convertible = _asserter(ConversionError)
