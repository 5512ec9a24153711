"""
Common utilities shared across components in the library
"""

# Standard
from datetime import timedelta
from typing import Any, Dict, Optional
import re

# Local
from . import constants

## Dicts #######################################################################


def nested_get(dct: dict, key: str, dflt=None) -> Any:
    """Look up a dotted key such as "watch.retries" in nested dicts

    Args:
        dct:  dict
            The outermost dict
        key:  str
            Dotted path of the value
        dflt:  Any
            Returned when any part of the path is missing

    Returns:
        val:  Any
            The value at the path, or dflt
    """
    *sections, leaf = key.split(constants.NESTED_DICT_DELIM)
    for depth, section in enumerate(sections):
        if section not in dct:
            return dflt
        dct = dct[section]
        if not isinstance(dct, dict):
            path = constants.NESTED_DICT_DELIM.join(sections[: depth + 1])
            raise TypeError(f"Value at {path} is not a dict")
    return dct.get(leaf, dflt)


## Selectors ###################################################################


def selector_to_str(selector: Optional[Dict[str, str]]) -> Optional[str]:
    """Render an equality based label selector dict in the string form that
    the kubernetes list/watch APIs accept

    Args:
        selector:  Optional[Dict[str, str]]
            Mapping from label key to required label value

    Returns:
        label_selector:  Optional[str]
            The "key=value,key2=value2" form, or None for an empty selector
    """
    if not selector:
        return None
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))


## Time ########################################################################

_TIME_DELTA_REGEX = re.compile(
    r"^((?P<hours>\d+?)hr)?((?P<minutes>\d+?)m)?((?P<seconds>\d*\.?\d+?)s)?$"
)


def parse_time_delta(time_str: str) -> Optional[timedelta]:
    """Parse a string into a timedelta. Accepts values in the following
    formats: 1hr, 5m, 10s, 1hr30m, 0.5s

    Args:
        time_str: str
            The string representation of a timedelta

    Returns:
        result: Optional[timedelta]
            The parsed timedelta if one could be found
    """
    parts = _TIME_DELTA_REGEX.match(time_str)
    if not parts or all(part is None for part in parts.groupdict().values()):
        return None
    time_params = {
        name: float(param) for name, param in parts.groupdict().items() if param
    }
    return timedelta(**time_params)
