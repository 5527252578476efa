"""
Helpers for the Secrets referenced by a Memcached. The hash of their data is
stamped on the pod template so that rotating a secret rolls the pods.
"""

# Standard
from typing import List
import base64
import hashlib

# Local
from ..api import v1beta1
from .common import sasl_enabled, tls_enabled

KIND = "Secret"
API_VERSION = "v1"


def referenced_secret_names(mc: v1beta1.Memcached) -> List[str]:
    """The sorted, unique names of the secrets referenced by enabled security
    features
    """
    names = set()
    if sasl_enabled(mc) and mc.spec.security.sasl.credentials_secret_ref.name:
        names.add(mc.spec.security.sasl.credentials_secret_ref.name)
    if tls_enabled(mc) and mc.spec.security.tls.certificate_secret_ref.name:
        names.add(mc.spec.security.tls.certificate_secret_ref.name)
    return sorted(names)


def compute_secret_hash(secrets: List[dict]) -> str:
    """Compute a deterministic SHA-256 over the data of the given secrets.
    Secrets are visited in name order and keys in sorted order. An empty string
    is returned when there is no data to hash.

    Args:
        secrets:  List[dict]
            Secret manifests whose data values are base64 encoded

    Returns:
        secret_hash:  str
            Hex digest of the secrets' content, or ""
    """
    if not any(secret.get("data") for secret in secrets):
        return ""

    digest = hashlib.sha256()
    for secret in sorted(secrets, key=lambda s: s.get("metadata", {}).get("name", "")):
        name = secret.get("metadata", {}).get("name", "").encode("utf-8")
        data = secret.get("data") or {}
        for key in sorted(data):
            digest.update(name)
            digest.update(b"\0")
            digest.update(key.encode("utf-8"))
            digest.update(b"\0")
            digest.update(base64.b64decode(data[key] or ""))
    return digest.hexdigest()


def secret_references_match(mc: v1beta1.Memcached, secret_name: str) -> bool:
    """Whether the given secret is referenced by the resource, regardless of
    whether the referencing feature is enabled
    """
    security = mc.spec.security
    if security is None:
        return False
    if (
        security.sasl is not None
        and security.sasl.credentials_secret_ref.name == secret_name
    ):
        return True
    return (
        security.tls is not None
        and security.tls.certificate_secret_ref.name == secret_name
    )
