"""
This defines the base class for all ResourceKind types
"""

# Standard
from typing import Callable, Optional, Set, Tuple
import abc

# First Party
import alog

# Local
from ..entity import EntityInfo
from ..exceptions import assert_cluster
from ..identity import OperatorIdentity, check_integrity

log = alog.use_channel("RKIND")

# Forward declarations
OPERATOR_TYPE = "Operator"
WATCHER_TYPE = "AbstractWatcher"


class ResourceKind(abc.ABC):
    """A ResourceKind knows where the resources of an operator live, how to
    turn one of them into an entity and how to watch them. One instance
    belongs to a single operator.
    """

    def __init__(
        self,
        is_supported: Optional[Callable[[dict], bool]] = None,
        convert: Optional[Callable[[dict], object]] = None,
    ):
        """
        Args:
            is_supported:  Optional[Callable[[dict], bool]]
                Extra filter applied to every raw resource before conversion.
                By default every resource is supported.
            convert:  Optional[Callable[[dict], object]]
                Function converting a raw resource to an entity, replacing
                the default conversion of the kind
        """
        self._is_supported = is_supported
        self._convert = convert

    ## Interface ###############################################################

    def check_integrity(self, identity: OperatorIdentity) -> bool:
        """Check that the identity is complete enough for this kind"""
        return check_integrity(identity)

    def on_init(self, operator: OPERATOR_TYPE):
        """Prepare the cluster before the watch is built"""

    def is_supported(self, raw: dict) -> bool:
        return self._is_supported(raw) if self._is_supported else True

    def convert(self, raw: dict, info_type: type):
        """Convert a raw resource to an entity of the given type

        Args:
            raw:  dict
                The resource as read from the cluster
            info_type:  type
                The entity type of the operator

        Returns:
            entity:  object
                The converted entity. An EntityInfo built by a convert
                function gets its name and namespace from the resource when
                it does not set them itself.
        """
        if self._convert is None:
            return self._default_convert(raw, info_type)
        entity = self._convert(raw)
        if isinstance(entity, EntityInfo):
            metadata = raw.get("metadata") or {}
            if entity.name is None:
                entity.name = metadata.get("name")
            if entity.namespace is None:
                entity.namespace = metadata.get("namespace")
        return entity

    @abc.abstractmethod
    def build_watcher(self, operator: OPERATOR_TYPE) -> WATCHER_TYPE:
        """Build the (not yet started) watcher for the operator"""

    @abc.abstractmethod
    def set_cr_status(
        self, operator: OPERATOR_TYPE, status: str, namespace: str, name: str
    ):
        """Write {state, lastTransitionTime} to the status of a resource"""

    def get_desired_set(self, operator: OPERATOR_TYPE) -> Set:
        """List every resource in the operator's scope and convert it. Items
        that are not supported or fail conversion under the skip policy are
        left out.

        Args:
            operator:  Operator
                The operator whose scope and deploy manager are used

        Returns:
            desired_set:  Set
                The converted entities
        """
        kind, api_version, label_selector = self._list_target(operator)
        namespace = None if operator.all_namespaces else operator.namespace
        success, manifests = operator.deploy_manager.filter_objects_current_state(
            kind=kind,
            namespace=namespace,
            api_version=api_version,
            label_selector=label_selector,
        )
        assert_cluster(success, f"Failed to list {api_version}/{kind} in {namespace}")

        desired_set = set()
        for manifest in manifests:
            if not self.is_supported(manifest):
                log.debug2("Leaving out unsupported resource")
                continue
            entity = operator.convert_resource(manifest)
            if entity is not None:
                desired_set.add(entity)
        log.debug(
            "Desired set of %s has %d of %d resources",
            operator.name,
            len(desired_set),
            len(manifests),
        )
        return desired_set

    ## Implementation Details ##################################################

    @abc.abstractmethod
    def _default_convert(self, raw: dict, info_type: type):
        """Conversion used when no convert function was given"""

    @abc.abstractmethod
    def _list_target(
        self, operator: OPERATOR_TYPE
    ) -> Tuple[str, str, Optional[str]]:
        """The kind, api_version and label selector of the operator's resources"""

    @staticmethod
    def _build_entity(info_type: type, data: dict, metadata: dict):
        """Build an entity with from_dict when the type provides it"""
        from_dict = getattr(info_type, "from_dict", None)
        if from_dict is not None:
            return from_dict(
                data, name=metadata.get("name"), namespace=metadata.get("namespace")
            )
        return info_type(**data)
