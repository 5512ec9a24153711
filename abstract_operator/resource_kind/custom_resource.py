"""
ResourceKind for entities stored as instances of a custom resource
"""

# Standard
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

# First Party
import alog

# Local
from .. import constants
from ..exceptions import assert_cluster, assert_convertible
from ..identity import OperatorIdentity
from ..watcher import CustomResourceWatcher
from .base import OPERATOR_TYPE, ResourceKind
from .crd import CrdDeployer, CrdHandle

log = alog.use_channel("CRKND")


class CustomResourceKind(ResourceKind):
    """Entities live in the spec of custom resources whose CRD is registered
    when the operator initializes
    """

    def __init__(
        self,
        is_supported: Optional[Callable[[dict], bool]] = None,
        convert: Optional[Callable[[dict], object]] = None,
        crd_deployer: Optional[CrdDeployer] = None,
    ):
        super().__init__(is_supported=is_supported, convert=convert)
        self.crd_deployer = crd_deployer or CrdDeployer()
        self.crd_handle: Optional[CrdHandle] = None

    ## Interface ###############################################################

    def check_integrity(self, identity: OperatorIdentity) -> bool:
        """Additional printer columns need a path per name and, if given, a
        type per name
        """
        if not super().check_integrity(identity):
            return False
        names = identity.printer_column_names
        paths = identity.printer_column_paths
        types = identity.printer_column_types
        return names is None or (
            paths is not None
            and len(names) == len(paths)
            and (types is None or len(names) == len(types))
        )

    def on_init(self, operator: OPERATOR_TYPE):
        identity = operator.identity
        self.crd_handle = self.crd_deployer.init_crds(
            operator.deploy_manager,
            identity.prefix,
            identity.entity_name,
            list(identity.short_names),
            identity.plural_name,
            _as_list(identity.printer_column_names),
            _as_list(identity.printer_column_paths),
            _as_list(identity.printer_column_types),
            identity.info_type,
            operator.is_openshift,
        )

    def build_watcher(self, operator: OPERATOR_TYPE) -> CustomResourceWatcher:
        assert self.crd_handle is not None, "The CRD was not initialized"
        return CustomResourceWatcher(operator, self.crd_handle)

    def set_cr_status(
        self, operator: OPERATOR_TYPE, status: str, namespace: str, name: str
    ):
        """Overwrite the status of the named custom resource. A resource that
        no longer exists is left alone.
        """
        assert self.crd_handle is not None, "The CRD was not initialized"
        success, changed = operator.deploy_manager.set_status(
            kind=self.crd_handle.kind,
            name=name,
            namespace=namespace,
            status={
                "state": status,
                "lastTransitionTime": datetime.now(timezone.utc).strftime(
                    constants.TRANSITION_TIME_FORMAT
                ),
            },
            api_version=self.crd_handle.api_version,
        )
        assert_cluster(success, f"Failed to set the status of {namespace}/{name}")
        log.debug2("Set status [%s] on %s/%s: %s", status, namespace, name, changed)

    ## Implementation Details ##################################################

    def _default_convert(self, raw: dict, info_type: type):
        spec = raw.get("spec")
        metadata = raw.get("metadata") or {}
        assert_convertible(
            isinstance(spec, dict),
            f"No spec in custom resource {metadata.get('name')}",
        )
        return self._build_entity(info_type, spec, metadata)

    def _list_target(self, operator: OPERATOR_TYPE) -> Tuple[str, str, Optional[str]]:
        assert self.crd_handle is not None, "The CRD was not initialized"
        return self.crd_handle.kind, self.crd_handle.api_version, None


def _as_list(values):
    return None if values is None else list(values)
