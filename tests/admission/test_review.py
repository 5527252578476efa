"""
Tests for the AdmissionReview and ConversionReview handlers
"""

# Third Party
import jsonpatch

# Local
from memcached_operator import constants
from memcached_operator.admission.review import (
    ADMISSION_API_VERSION,
    ADMISSION_KIND,
    CONVERSION_API_VERSION,
    CONVERSION_KIND,
    handle_convert,
    handle_mutate,
    handle_validate,
)
from memcached_operator.test_helpers.helpers import decode_patch, setup_cr

## Helpers #####################################################################


def admission_review(obj, operation="CREATE", uid="1234"):
    return {
        "apiVersion": ADMISSION_API_VERSION,
        "kind": ADMISSION_KIND,
        "request": {"uid": uid, "operation": operation, "object": obj},
    }


def conversion_review(objects, desired_api_version, uid="5678"):
    return {
        "apiVersion": CONVERSION_API_VERSION,
        "kind": CONVERSION_KIND,
        "request": {
            "uid": uid,
            "desiredAPIVersion": desired_api_version,
            "objects": objects,
        },
    }


## Mutate ######################################################################


def test_mutate_returns_defaulting_patch(registry):
    """The patch applied to the request object yields the defaulted object"""
    obj = setup_cr({"replicas": 2})
    review = handle_mutate(registry, admission_review(obj))
    response = review["response"]
    assert review["kind"] == ADMISSION_KIND
    assert response["uid"] == "1234"
    assert response["allowed"]
    assert response["patchType"] == "JSONPatch"

    patched = jsonpatch.apply_patch(obj, decode_patch(review))
    assert patched["spec"]["replicas"] == 2
    assert patched["spec"]["image"] == "memcached:1.6"
    assert patched["spec"]["memcached"]["maxMemoryMB"] == 64


def test_mutate_spoke_revision(registry):
    """Spoke documents are defaulted and patched in their own revision"""
    obj = setup_cr(api_version=constants.SPOKE_API_VERSION)
    review = handle_mutate(registry, admission_review(obj))
    patched = jsonpatch.apply_patch(obj, decode_patch(review))
    assert patched["apiVersion"] == constants.SPOKE_API_VERSION
    assert patched["spec"]["replicas"] == 1


def test_mutate_defaulted_object_no_patch(registry):
    """An already defaulted object produces no patch"""
    obj = setup_cr(defaulted=True)
    review = handle_mutate(registry, admission_review(obj))
    assert review["response"]["allowed"]
    assert "patch" not in review["response"]
    assert decode_patch(review) == []


def test_mutate_malformed(registry):
    """A malformed object is refused with a bad request status"""
    review = handle_mutate(
        registry, admission_review(setup_cr({"replicas": "lots"}))
    )
    assert not review["response"]["allowed"]
    assert review["response"]["status"]["code"] == 400
    assert "spec.replicas" in review["response"]["status"]["message"]


def test_mutate_delete_allowed(registry):
    review = handle_mutate(registry, admission_review(None, operation="DELETE"))
    assert review["response"] == {"uid": "1234", "allowed": True}


## Validate ####################################################################


def test_validate_accepts(registry):
    review = handle_validate(registry, admission_review(setup_cr(defaulted=True)))
    assert review["response"]["allowed"]
    assert "status" not in review["response"]


def test_validate_rejects_with_all_causes(registry):
    """A rejected object reports every violation as a cause"""
    obj = setup_cr(
        {
            "replicas": 1,
            "security": {"sasl": {"enabled": True}, "tls": {"enabled": True}},
        },
        defaulted=True,
    )
    review = handle_validate(registry, admission_review(obj))
    response = review["response"]
    assert not response["allowed"]
    status = response["status"]
    assert status["code"] == 422
    assert status["reason"] == "Invalid"
    assert status["details"]["kind"] == constants.KIND
    assert status["details"]["group"] == constants.API_GROUP
    assert [cause["field"] for cause in status["details"]["causes"]] == [
        "spec.security.sasl.credentialsSecretRef.name",
        "spec.security.tls.certificateSecretRef.name",
    ]
    assert status["message"].startswith(
        'Memcached.memcached.c5c3.io "test-instance" is invalid: ['
    )


def test_validate_spoke_revision(registry):
    obj = setup_cr(
        {"autoscaling": {"enabled": True, "maxReplicas": 2}, "replicas": 1},
        api_version=constants.SPOKE_API_VERSION,
    )
    review = handle_validate(registry, admission_review(obj))
    assert not review["response"]["allowed"]
    causes = review["response"]["status"]["details"]["causes"]
    assert "spec.replicas" in [cause["field"] for cause in causes]


def test_validate_delete_allowed(registry):
    """Deleting is allowed even for objects that would not validate"""
    obj = setup_cr({"security": {"sasl": {"enabled": True}}})
    review = handle_validate(registry, admission_review(obj, operation="DELETE"))
    assert review["response"]["allowed"]


def test_validate_unknown_revision(registry):
    obj = setup_cr(api_version="foo.bar/v1")
    review = handle_validate(registry, admission_review(obj))
    assert not review["response"]["allowed"]
    assert review["response"]["status"]["code"] == 400


## Convert #####################################################################


def test_convert_success(registry):
    """Every object is converted to the desired revision"""
    objects = [
        setup_cr({"replicas": 2}, api_version=constants.SPOKE_API_VERSION),
        setup_cr({"replicas": 3}, name="other"),
    ]
    review = handle_convert(
        registry, conversion_review(objects, constants.HUB_API_VERSION)
    )
    response = review["response"]
    assert review["kind"] == CONVERSION_KIND
    assert response["uid"] == "5678"
    assert response["result"] == {"status": "Success"}
    assert [obj["apiVersion"] for obj in response["convertedObjects"]] == [
        constants.HUB_API_VERSION,
        constants.HUB_API_VERSION,
    ]
    assert [obj["spec"]["replicas"] for obj in response["convertedObjects"]] == [2, 3]


def test_convert_failure_fails_review(registry):
    """A single bad object fails the whole review"""
    objects = [
        setup_cr({"replicas": 2}),
        setup_cr({"replicas": "two"}, name="bad"),
    ]
    review = handle_convert(
        registry, conversion_review(objects, constants.SPOKE_API_VERSION)
    )
    response = review["response"]
    assert response["result"]["status"] == "Failure"
    assert "malformed document" in response["result"]["message"]
    assert response["convertedObjects"] == []


def test_convert_unknown_desired_revision(registry):
    review = handle_convert(
        registry, conversion_review([setup_cr()], "memcached.c5c3.io/v9")
    )
    assert review["response"]["result"]["status"] == "Failure"
