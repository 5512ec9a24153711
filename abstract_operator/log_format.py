"""
Custom logging formats that carry the identity of the operator and resource
a log line is about
"""

# First Party
from alog import AlogJsonFormatter


class OperatorJsonFormatter(AlogJsonFormatter):
    """Custom Log Format that extends AlogJsonFormatter to add the operator
    name, the watched namespace and the identifiers of the resource an event
    is about. The values come from the "operator" and "resource" extras of a
    record.
    """

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "threadName",
        "operatorName",
        "watchNamespace",
        "kind",
        "apiVersion",
        "resourceName",
    ]

    def format(self, record):
        if operator := getattr(record, "operator", None):
            record.operatorName = operator.name
            record.watchNamespace = operator.namespace

        if resource := getattr(record, "resource", None):
            record.kind = resource.get("kind")
            record.apiVersion = resource.get("apiVersion")
            record.resourceName = (resource.get("metadata") or {}).get("name")

        return super().format(record)
