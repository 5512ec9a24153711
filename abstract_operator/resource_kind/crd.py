"""
Registration of the CustomResourceDefinition backing a custom resource
operator
"""

# Standard
from dataclasses import dataclass
from typing import List, Optional

# First Party
import alog

# Local
from .. import constants
from ..deploy_manager import DeployManagerBase
from ..exceptions import assert_cluster

log = alog.use_channel("CRD")

# Schema used for entity types that do not describe themselves
DEFAULT_SCHEMA = {"type": "object", "x-kubernetes-preserve-unknown-fields": True}

# Schema of the status written by set_cr_status
STATUS_SCHEMA = {
    "type": "object",
    "properties": {
        "state": {"type": "string"},
        "lastTransitionTime": {"type": "string", "format": "date-time"},
    },
}

# Printer column type used when none is given
DEFAULT_PRINTER_COLUMN_TYPE = "string"


@dataclass(frozen=True)
class CrdHandle:
    """Identifies the custom resource kind registered for an operator"""

    group: str
    version: str
    kind: str
    plural: str
    is_openshift: bool = False

    @property
    def name(self) -> str:
        return f"{self.plural}.{self.group}"

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


class CrdDeployer:
    """Makes sure the CRD for an operator's entity exists in the cluster"""

    def init_crds(  # pylint: disable=too-many-arguments,too-many-locals
        self,
        deploy_manager: DeployManagerBase,
        prefix: str,
        entity_name: str,
        short_names: Optional[List[str]],
        plural_name: Optional[str],
        printer_column_names: Optional[List[str]],
        printer_column_paths: Optional[List[str]],
        printer_column_types: Optional[List[str]],
        info_type: type,
        is_openshift: bool,
    ) -> CrdHandle:
        """Reuse the CRD for the entity if the cluster has one, otherwise
        deploy it

        Args:
            deploy_manager:  DeployManagerBase
                The handle used to read and write the CRD
            prefix:  str
                The operator prefix. Without its trailing "/" it is the group.
            entity_name:  str
                The kind of the custom resource
            short_names:  Optional[List[str]]
                Short names for the kind
            plural_name:  Optional[str]
                The plural of the kind. Defaults to the lower-cased kind + "s"
            printer_column_names:  Optional[List[str]]
                Names of the additional printer columns
            printer_column_paths:  Optional[List[str]]
                json paths of the additional printer columns
            printer_column_types:  Optional[List[str]]
                Types of the additional printer columns, string by default
            info_type:  type
                The entity type, whose openapi_schema() is used if present
            is_openshift:  bool
                Whether the cluster is openshift

        Returns:
            crd_handle:  CrdHandle
                The identifiers of the registered kind
        """
        group = prefix.rstrip("/")
        plural = plural_name or entity_name.lower() + "s"
        handle = CrdHandle(
            group=group,
            version=constants.CRD_VERSION,
            kind=entity_name,
            plural=plural,
            is_openshift=is_openshift,
        )

        success, current = deploy_manager.get_object_current_state(
            kind=constants.CRD_KIND,
            name=handle.name,
            api_version=constants.CRD_API_VERSION,
        )
        assert_cluster(success, f"Failed to look up the CRD {handle.name}")
        if current is not None:
            log.info("Reusing the existing CRD %s", handle.name)
            versions = current.get("spec", {}).get("versions") or []
            if versions and versions[0].get("name"):
                handle = CrdHandle(
                    group=group,
                    version=versions[0]["name"],
                    kind=entity_name,
                    plural=plural,
                    is_openshift=is_openshift,
                )
            return handle

        definition = self.crd_definition(
            handle,
            short_names=short_names,
            printer_columns=self._printer_columns(
                printer_column_names, printer_column_paths, printer_column_types
            ),
            schema=self._schema(info_type),
        )
        log.info(
            "Deploying the CRD %s (openshift: %s)", handle.name, handle.is_openshift
        )
        log.debug3(definition)
        success, _ = deploy_manager.deploy([definition])
        assert_cluster(success, f"Failed to deploy the CRD {handle.name}")
        return handle

    @staticmethod
    def crd_definition(
        handle: CrdHandle,
        short_names: Optional[List[str]] = None,
        printer_columns: Optional[List[dict]] = None,
        schema: Optional[dict] = None,
    ) -> dict:
        """Render the CustomResourceDefinition manifest for a handle"""
        version = {
            "name": handle.version,
            "served": True,
            "storage": True,
            "subresources": {"status": {}},
            "schema": {"openAPIV3Schema": schema or DEFAULT_SCHEMA},
        }
        if printer_columns:
            version["additionalPrinterColumns"] = printer_columns

        names = {
            "kind": handle.kind,
            "listKind": f"{handle.kind}List",
            "plural": handle.plural,
            "singular": handle.kind.lower(),
        }
        if short_names:
            names["shortNames"] = list(short_names)

        return {
            "apiVersion": constants.CRD_API_VERSION,
            "kind": constants.CRD_KIND,
            "metadata": {"name": handle.name},
            "spec": {
                "group": handle.group,
                "names": names,
                "scope": "Namespaced",
                "versions": [version],
            },
        }

    ## Implementation Details ##################################################

    @staticmethod
    def _printer_columns(names, paths, types) -> List[dict]:
        columns = []
        for i, name in enumerate(names or []):
            columns.append(
                {
                    "name": name,
                    "jsonPath": paths[i],
                    "type": types[i] if types else DEFAULT_PRINTER_COLUMN_TYPE,
                }
            )
        return columns

    @staticmethod
    def _schema(info_type: type) -> dict:
        openapi_schema = getattr(info_type, "openapi_schema", None)
        schema = openapi_schema() if callable(openapi_schema) else None
        if schema is None:
            return DEFAULT_SCHEMA

        schema = dict(schema)
        schema.setdefault("type", "object")
        properties = dict(schema.get("properties") or {})
        properties.setdefault("status", STATUS_SCHEMA)
        schema["properties"] = properties
        return schema
