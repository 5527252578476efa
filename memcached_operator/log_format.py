"""
Json log format that tags each record with the Memcached resource being
reconciled. Reconcile log lines pass the resource manifest and the
reconciliation id through the logging `extra` dict.
"""

# First Party
from alog import AlogJsonFormatter


class MemcachedJsonFormatter(AlogJsonFormatter):
    """AlogJsonFormatter plus resource and thread identifiers"""

    _FIELDS_TO_PRINT = AlogJsonFormatter._FIELDS_TO_PRINT + [
        "threadName",
        "kind",
        "apiVersion",
        "namespace",
        "resourceName",
        "resourceVersion",
        "generation",
        "reconciliationId",
    ]

    def format(self, record):
        reconciliation_id = getattr(record, "reconciliation_id", None)
        if reconciliation_id:
            record.reconciliationId = reconciliation_id

        resource = getattr(record, "resource", None)
        if isinstance(resource, dict):
            metadata = resource.get("metadata") or {}
            record.kind = resource.get("kind")
            record.apiVersion = resource.get("apiVersion")
            record.namespace = metadata.get("namespace")
            record.resourceName = metadata.get("name")
            record.resourceVersion = metadata.get("resourceVersion")
            record.generation = metadata.get("generation")

        return super().format(record)
