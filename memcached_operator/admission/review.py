"""
Handling of AdmissionReview and ConversionReview envelopes. These functions
take and return plain dicts so that they can be driven by any transport.
"""

# Standard
from typing import Any, Optional
import base64
import copy

# Third Party
from jsonpatch import make_patch

# First Party
import alog

# Local
from .. import constants
from ..exceptions import ConversionError, ValidationError

log = alog.use_channel("ADMIT")

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMISSION_KIND = "AdmissionReview"
CONVERSION_API_VERSION = "apiextensions.k8s.io/v1"
CONVERSION_KIND = "ConversionReview"

OPERATION_DELETE = "DELETE"

## Admission ###################################################################


def handle_mutate(registry, review: dict) -> dict:
    """Default the object in an AdmissionReview request and respond with the
    JSONPatch that applies the defaults

    Args:
        registry:  SchemeRegistry
            The registry used to resolve the object's revision
        review:  dict
            The AdmissionReview request envelope

    Returns:
        review:  dict
            The AdmissionReview response envelope
    """
    request = review.get("request") or {}
    uid = request.get("uid", "")
    if request.get("operation") == OPERATION_DELETE:
        return _admission_response(uid, allowed=True)

    raw = request.get("object")
    try:
        doc = registry.parse(raw)
        callbacks = registry.admission_callbacks(doc.api_version)
        mutated = callbacks.default_fn(doc).to_dict()
    except ConversionError as err:
        log.warning("Failed to default request %s: %s", uid, err)
        return _admission_response(uid, allowed=False, status=_bad_request(err))

    patch = make_patch(raw, mutated)
    log.debug2("Defaulting patch for %s: %s", doc.name, patch)
    response = _admission_response(uid, allowed=True)
    if patch.patch:
        response["response"]["patchType"] = "JSONPatch"
        response["response"]["patch"] = base64.b64encode(
            patch.to_string().encode("utf-8")
        ).decode("utf-8")
    return response


def handle_validate(registry, review: dict) -> dict:
    """Validate the object in an AdmissionReview request. Deletions are always
    allowed so that an invalid stored object can be removed.

    Args:
        registry:  SchemeRegistry
            The registry used to resolve the object's revision
        review:  dict
            The AdmissionReview request envelope

    Returns:
        review:  dict
            The AdmissionReview response envelope
    """
    request = review.get("request") or {}
    uid = request.get("uid", "")
    if request.get("operation") == OPERATION_DELETE:
        return _admission_response(uid, allowed=True)

    try:
        doc = registry.parse(request.get("object"))
        callbacks = registry.admission_callbacks(doc.api_version)
        violations = callbacks.validate_fn(doc)
    except ConversionError as err:
        log.warning("Failed to validate request %s: %s", uid, err)
        return _admission_response(uid, allowed=False, status=_bad_request(err))

    if not violations:
        return _admission_response(uid, allowed=True)

    err = ValidationError(doc.name, violations)
    log.info("Rejected %s: %s", doc.name, err)
    return _admission_response(uid, allowed=False, status=invalid_status(err))


def invalid_status(err: ValidationError) -> dict:
    """Render a ValidationError as a platform Status"""
    return {
        "metadata": {},
        "status": "Failure",
        "message": str(err),
        "reason": "Invalid",
        "details": {
            "name": err.name,
            "group": constants.API_GROUP,
            "kind": constants.KIND,
            "causes": [violation.to_cause() for violation in err.violations],
        },
        "code": 422,
    }


## Conversion ##################################################################


def handle_convert(registry, review: dict) -> dict:
    """Convert every object in a ConversionReview to the desired revision.
    Any failure fails the whole review.

    Args:
        registry:  SchemeRegistry
            The registry holding the conversion functions
        review:  dict
            The ConversionReview request envelope

    Returns:
        review:  dict
            The ConversionReview response envelope
    """
    request = review.get("request") or {}
    uid = request.get("uid", "")
    desired_api_version = request.get("desiredAPIVersion")
    response = {"uid": uid}
    try:
        converted = [
            _convert_object(registry, obj, desired_api_version)
            for obj in request.get("objects") or []
        ]
    except ConversionError as err:
        log.warning("Conversion to %s failed: %s", desired_api_version, err)
        response["convertedObjects"] = []
        response["result"] = {"status": "Failure", "message": str(err)}
    else:
        response["convertedObjects"] = converted
        response["result"] = {"status": "Success"}
    return {
        "apiVersion": review.get("apiVersion", CONVERSION_API_VERSION),
        "kind": CONVERSION_KIND,
        "response": response,
    }


## Implementation Details ######################################################


def _convert_object(registry, obj: Any, desired_api_version: str) -> dict:
    doc = registry.parse(obj)
    target_cls = registry.lookup(desired_api_version, doc.kind)
    converted = registry.convert(doc, desired_api_version)
    if not isinstance(converted, target_cls):
        raise ConversionError(
            f"expected {desired_api_version} {doc.kind} but got "
            f"{type(converted).__name__}"
        )
    log.debug3("Converted %s to %s", doc.name, desired_api_version)
    return converted.to_dict()


def _admission_response(
    uid: str, allowed: bool, status: Optional[dict] = None
) -> dict:
    response = {"uid": uid, "allowed": allowed}
    if status is not None:
        response["status"] = copy.deepcopy(status)
    return {
        "apiVersion": ADMISSION_API_VERSION,
        "kind": ADMISSION_KIND,
        "response": response,
    }


def _bad_request(err: Exception) -> dict:
    return {"metadata": {}, "status": "Failure", "message": str(err), "code": 400}

