"""
Resolution of an operator's identity (entity name, label prefix, operator
name) from its declarative definition, plus the integrity check run before
an operator is allowed to start
"""

# Standard
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple, Type
import re

# First Party
import alog

# Local
from . import constants

log = alog.use_channel("IDNTY")

# Label key prefixes must be DNS subdomains
_DNS_SUBDOMAIN = re.compile(
    r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$"
)


class ConversionErrorPolicy(Enum):
    """What to do with a resource that cannot be converted to its entity"""

    SKIP = "skip"
    FAIL = "fail"


@dataclass
class OperatorDefinition:  # pylint: disable=too-many-instance-attributes
    """The declarative configuration of a single operator"""

    info_type: Optional[Type] = None
    entity_name: str = ""
    prefix: str = ""
    short_names: List[str] = field(default_factory=list)
    plural_name: str = ""
    enabled: bool = True
    named: str = ""
    crd: bool = False
    additional_printer_column_names: Optional[List[str]] = None
    additional_printer_column_paths: Optional[List[str]] = None
    additional_printer_column_types: Optional[List[str]] = None
    conversion_error_policy: Optional[ConversionErrorPolicy] = None


@dataclass(frozen=True)
class OperatorIdentity:  # pylint: disable=too-many-instance-attributes
    """The resolved identity of an operator"""

    info_type: Optional[Type]
    entity_name: str
    prefix: str
    plural_name: str = ""
    short_names: Tuple[str, ...] = ()
    printer_column_names: Optional[Tuple[str, ...]] = None
    printer_column_paths: Optional[Tuple[str, ...]] = None
    printer_column_types: Optional[Tuple[str, ...]] = None

    @property
    def operator_name(self) -> str:
        return f"'{self.entity_name}' {constants.OPERATOR_NAME_SUFFIX}"


## Resolution ##################################################################


def resolve_identity(
    definition: OperatorDefinition,
    default_prefix: str = "",
) -> OperatorIdentity:
    """Resolve the final identity of an operator. The entity name comes from
    the first non-empty of named, entity_name and the display name of the
    info type. The prefix falls back to default_prefix and always ends with
    a single "/". Nothing is raised here, an incomplete identity is rejected
    by check_integrity.

    Args:
        definition:  OperatorDefinition
            The declared configuration of the operator
        default_prefix:  str
            The prefix to use when the definition does not name one,
            normally the package of the operator's handler

    Returns:
        identity:  OperatorIdentity
            The resolved identity
    """
    entity_name = definition.named or definition.entity_name
    if not entity_name and definition.info_type is not None:
        display_name = getattr(definition.info_type, "display_name", None)
        entity_name = (
            display_name() if callable(display_name) else definition.info_type.__name__
        )
    entity_name = entity_name or ""

    prefix = definition.prefix or default_prefix or ""
    if prefix and not prefix.endswith("/"):
        prefix = prefix + "/"

    log.debug2("Resolved identity [%s] with prefix [%s]", entity_name, prefix)
    return OperatorIdentity(
        info_type=definition.info_type,
        entity_name=entity_name,
        prefix=prefix,
        plural_name=definition.plural_name,
        short_names=tuple(definition.short_names or ()),
        printer_column_names=_as_tuple(definition.additional_printer_column_names),
        printer_column_paths=_as_tuple(definition.additional_printer_column_paths),
        printer_column_types=_as_tuple(definition.additional_printer_column_types),
    )


def default_prefix_for_module(module_name: str) -> str:
    """Derive a label prefix from the package of a handler's module. Label
    prefixes must be DNS subdomains, so the name is lower-cased and
    underscores become dashes.

    Args:
        module_name:  str
            The dotted module name, e.g. "my_operator.handlers"

    Returns:
        prefix:  str
            The prefix without the trailing "/", e.g. "my-operator"
    """
    package = module_name.rpartition(".")[0] or module_name
    prefix = package.lower().replace("_", "-")
    if not _DNS_SUBDOMAIN.match(prefix):
        log.warning(
            "The prefix %s derived from %s is not a valid label prefix, set the"
            " prefix of the operator definition",
            prefix,
            module_name,
        )
    return prefix


def check_integrity(identity: OperatorIdentity) -> bool:
    """Check that an identity is complete enough to start an operator

    Args:
        identity:  OperatorIdentity
            The resolved identity

    Returns:
        ok:  bool
            True if the info type is set and hashable, the entity name is
            non-empty, the prefix is non-empty and ends with "/" and the
            operator name ends with the expected suffix
    """
    if identity.info_type is not None and identity.info_type.__hash__ is None:
        log.warning(
            "Entities of %s cannot be collected in a desired set, they are not"
            " hashable",
            identity.info_type.__name__,
        )
        return False
    return (
        identity.info_type is not None
        and bool(identity.entity_name)
        and bool(identity.prefix)
        and identity.prefix.endswith("/")
        and identity.operator_name.endswith(constants.OPERATOR_NAME_SUFFIX)
    )


def labels_for_kind(entity_name: str, prefix: str) -> Dict[str, str]:
    """The label selector that scopes the resources owned by an operator"""
    return {prefix + constants.OPERATOR_KIND_LABEL: entity_name}


## Implementation ##############################################################


def _as_tuple(values: Optional[List[str]]) -> Optional[Tuple[str, ...]]:
    return None if values is None else tuple(values)
