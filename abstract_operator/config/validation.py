"""
Typed checks of the library config. config_validation.yaml mirrors the
layout of config.yaml and every mapping in it that names a known "type"
describes how the value at the same key must look.
"""

# Standard
from typing import Any, Dict, List, Optional, Type
import abc
import builtins

# First Party
import aconfig
import alog

# Local
from .. import constants
from ..utils import nested_get

log = alog.use_channel("CONFG")

## Public ######################################################################


def get_invalid_params(
    config: aconfig.Config,
    validation_config: aconfig.Config,
) -> List[str]:
    """Check every described key of the config

    Args:
        config:  aconfig.Config
            The loaded config, overrides included
        validation_config:  aconfig.Config
            The schema with the same layout as the config

    Returns:
        invalid_params:  List[str]
            Dotted names of the keys whose values fail their checks
    """
    invalid_params = []
    for dotted_key, parameter in _parse_validation_config(validation_config).items():
        value = nested_get(config, dotted_key)
        if parameter.validate(value):
            continue
        log.warning("Config key [%s] has an invalid value: %s", dotted_key, value)
        invalid_params.append(dotted_key)
    return invalid_params


## Parameter Types #############################################################

# Parameter classes by the "type" name used in the schema
_PARAMETER_TYPES: Dict[str, Type["_ValidatedParameter"]] = {}


def _parameter_type(type_name: str):
    """Register a parameter class under its schema name"""

    def decorator(cls):
        _PARAMETER_TYPES[type_name] = cls
        return cls

    return decorator


class _ValidatedParameter(abc.ABC):
    """Base of the typed checks. A value must be one of ACCEPTED_TYPES and
    then satisfy the constraints of the concrete check. Optional parameters
    also accept None.
    """

    ACCEPTED_TYPES = ()

    def __init__(self, optional: bool = False):
        self.optional = optional

    def validate(self, value: Any) -> bool:
        if value is None and self.optional:
            return True
        if not isinstance(value, self.ACCEPTED_TYPES):
            log.debug2("Type %s is not one of %s", type(value), self.ACCEPTED_TYPES)
            return False
        return self._validate_value(value)

    @abc.abstractmethod
    def _validate_value(self, value: Any) -> bool:
        """Constraints beyond the type"""


class _SizedParameter(_ValidatedParameter):
    """Shared length bounds of str and list values"""

    def __init__(
        self,
        *,
        min_len: Optional[int] = None,
        max_len: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.min_len = min_len
        self.max_len = max_len

    def _validate_value(self, value: Any) -> bool:
        too_short = self.min_len is not None and len(value) < self.min_len
        too_long = self.max_len is not None and len(value) > self.max_len
        return not (too_short or too_long)


@_parameter_type("number")
class _NumberParameter(_ValidatedParameter):
    ACCEPTED_TYPES = (int, float)

    def __init__(
        self,
        *,
        min: Optional[float] = None,  # pylint: disable=redefined-builtin
        max: Optional[float] = None,  # pylint: disable=redefined-builtin
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.lower = min
        self.upper = max

    def _validate_value(self, value: Any) -> bool:
        if isinstance(value, bool):
            return False
        if self.lower is not None and value < self.lower:
            return False
        return self.upper is None or value <= self.upper


@_parameter_type("int")
class _IntParameter(_NumberParameter):
    ACCEPTED_TYPES = (int,)


@_parameter_type("float")
class _FloatParameter(_NumberParameter):
    ACCEPTED_TYPES = (float,)


@_parameter_type("str")
class _StrParameter(_SizedParameter):
    ACCEPTED_TYPES = (str,)


@_parameter_type("bool")
class _BoolParameter(_ValidatedParameter):
    ACCEPTED_TYPES = (bool,)

    def _validate_value(self, value: Any) -> bool:
        return True


@_parameter_type("enum")
class _EnumParameter(_ValidatedParameter):
    ACCEPTED_TYPES = (str, int, bool, type(None))

    def __init__(self, *, values: List[Any], **kwargs):
        super().__init__(**kwargs)
        assert values, "An enum parameter needs values"
        self.values = list(values)

    def _validate_value(self, value: Any) -> bool:
        return value in self.values


@_parameter_type("list")
class _ListParameter(_SizedParameter):
    ACCEPTED_TYPES = (list,)

    def __init__(self, *, item_type: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.item_type = None
        if item_type is not None:
            self.item_type = getattr(builtins, item_type, None)
            assert isinstance(self.item_type, type), f"Unknown item_type {item_type}"

    def _validate_value(self, value: Any) -> bool:
        if not super()._validate_value(value):
            return False
        return self.item_type is None or all(
            isinstance(item, self.item_type) for item in value
        )


## Schema Parsing ##############################################################


def _construct_parameter(param_args: Dict[str, Any]) -> Optional[_ValidatedParameter]:
    """Build the check described by one schema mapping, or None when its
    "type" is not a known parameter type
    """
    param_args = dict(param_args)
    parameter_class = _PARAMETER_TYPES.get(param_args.pop("type", None))
    if not isinstance(parameter_class, type):
        return None
    return parameter_class(**param_args)


def _parse_validation_config(
    validation_config: aconfig.Config,
    prefix_parts: Optional[List[str]] = None,
) -> Dict[str, _ValidatedParameter]:
    """Walk the schema and collect the checks by dotted key. Mappings that
    do not describe a parameter are sections and are walked in turn.
    """
    prefix_parts = prefix_parts or []
    parameters = {}
    for key, val in validation_config.items():
        if not isinstance(val, dict):
            continue
        key_parts = prefix_parts + [key]
        parameter = None
        if isinstance(val.get("type"), str):
            parameter = _construct_parameter(val)
        if parameter is None:
            parameters.update(_parse_validation_config(val, key_parts))
        else:
            parameters[constants.NESTED_DICT_DELIM.join(key_parts)] = parameter
    return parameters
