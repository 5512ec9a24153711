"""
Test the custom exceptions and assert functions
"""

# Third Party
import pytest

# Local
from abstract_operator import exceptions


def test_assert_config_pass():
    """Make sure that no exception is throw by assert_config when it
    passes
    """
    exceptions.assert_config(True)


def test_assert_config_fail():
    """Make sure the right exception is thrown by assert_config when it
    fails
    """
    exception_msg = "error mesage"
    with pytest.raises(exceptions.ConfigError, match=exception_msg):
        exceptions.assert_config(False, exception_msg)


def test_assert_cluster_fail():
    """Make sure the right exception is thrown by assert_cluster when it
    fails
    """
    exception_msg = "error mesage"
    exceptions.assert_cluster(True)
    with pytest.raises(exceptions.ClusterError, match=exception_msg):
        exceptions.assert_cluster(False, exception_msg)


def test_assert_convertible_fail():
    """Make sure the right exception is thrown by assert_convertible when it
    fails
    """
    exceptions.assert_convertible(True)
    with pytest.raises(exceptions.ConversionError, match="bad payload"):
        exceptions.assert_convertible(False, "bad payload")


@pytest.mark.parametrize(
    ["exception_type", "is_fatal"],
    [
        (exceptions.ConfigError, True),
        (exceptions.ClusterError, True),
        (exceptions.WatchEstablishmentError, True),
        (exceptions.ConversionError, False),
    ],
)
def test_exception_fatality(exception_type, is_fatal):
    """Make sure every exception derives from the base and reports whether it
    is fatal
    """
    err = exception_type("message")
    assert isinstance(err, exceptions.OperatorError)
    assert err.is_fatal_error is is_fatal
    assert str(err) == "message"
