"""
Tests for the referenced Secret helpers
"""

# Local
from memcached_operator.builders.secret import (
    compute_secret_hash,
    referenced_secret_names,
    secret_references_match,
)
from memcached_operator.test_helpers.helpers import make_secret, setup_memcached

## Helpers #####################################################################

SECURITY = {
    "sasl": {"enabled": True, "credentialsSecretRef": {"name": "sasl-creds"}},
    "tls": {"enabled": True, "certificateSecretRef": {"name": "tls-certs"}},
}

## referenced_secret_names #####################################################


def test_referenced_secret_names():
    """Names are sorted and only come from enabled features"""
    assert referenced_secret_names(setup_memcached({"security": SECURITY})) == [
        "sasl-creds",
        "tls-certs",
    ]
    disabled_tls = {
        "sasl": SECURITY["sasl"],
        "tls": {"enabled": False, "certificateSecretRef": {"name": "tls-certs"}},
    }
    assert referenced_secret_names(setup_memcached({"security": disabled_tls})) == [
        "sasl-creds"
    ]
    assert referenced_secret_names(setup_memcached()) == []


def test_referenced_secret_names_unique():
    same = {
        "sasl": {"enabled": True, "credentialsSecretRef": {"name": "shared"}},
        "tls": {"enabled": True, "certificateSecretRef": {"name": "shared"}},
    }
    assert referenced_secret_names(setup_memcached({"security": same})) == ["shared"]


## secret_references_match #####################################################


def test_secret_references_match():
    """Matching ignores whether the referencing feature is enabled"""
    security = {"sasl": {"enabled": False, "credentialsSecretRef": {"name": "creds"}}}
    mc = setup_memcached({"security": security})
    assert secret_references_match(mc, "creds")
    assert not secret_references_match(mc, "other")
    assert not secret_references_match(setup_memcached(), "creds")


## compute_secret_hash #########################################################


def test_hash_empty():
    assert compute_secret_hash([]) == ""
    assert compute_secret_hash([make_secret("empty")]) == ""


def test_hash_deterministic():
    """The hash does not depend on the order of secrets or keys"""
    first = make_secret("a", {"x": "1", "y": "2"})
    second = make_secret("b", {"z": "3"})
    reordered = make_secret("a", {"y": "2", "x": "1"})
    digest = compute_secret_hash([first, second])
    assert len(digest) == 64
    assert compute_secret_hash([second, reordered]) == digest


def test_hash_changes_with_content():
    base = compute_secret_hash([make_secret("a", {"password-file": "user:pass"})])
    rotated = compute_secret_hash([make_secret("a", {"password-file": "user:new"})])
    renamed_key = compute_secret_hash([make_secret("a", {"other": "user:pass"})])
    renamed_secret = compute_secret_hash(
        [make_secret("b", {"password-file": "user:pass"})]
    )
    assert len({base, rotated, renamed_key, renamed_secret}) == 4
