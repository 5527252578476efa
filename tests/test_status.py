"""
Tests for the status computation
"""

# Local
from memcached_operator import status
from memcached_operator.api import v1beta1
from memcached_operator.test_helpers.helpers import get_condition, setup_memcached

## Helpers #####################################################################

NOW = "2024-01-01T00:00:00Z"
LATER = "2024-01-01T01:00:00Z"


def make_deployment(ready, updated=None, total=None):
    updated = ready if updated is None else updated
    total = ready if total is None else total
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "status": {
            "readyReplicas": ready,
            "updatedReplicas": updated,
            "replicas": total,
        },
    }


def conditions_by_type(conditions):
    return {cond.type: cond for cond in conditions}


## compute_conditions ##########################################################


def test_deployment_missing():
    conds = conditions_by_type(
        status.compute_conditions(setup_memcached({"replicas": 2}), None, now=NOW)
    )
    assert conds["Available"].status == "False"
    assert conds["Available"].reason == "Unavailable"
    assert conds["Available"].message == "0/2 replicas are ready"
    assert conds["Progressing"].status == "True"
    assert conds["Progressing"].message == "Waiting for deployment to be created"
    assert conds["Degraded"].status == "True"
    assert conds["Degraded"].reason == "Degraded"


def test_all_ready():
    conds = conditions_by_type(
        status.compute_conditions(
            setup_memcached({"replicas": 3}), make_deployment(3), now=NOW
        )
    )
    assert conds["Available"].status == "True"
    assert conds["Available"].message == "3/3 replicas are ready"
    assert conds["Progressing"].status == "False"
    assert conds["Progressing"].reason == "ProgressingComplete"
    assert conds["Degraded"].status == "False"
    assert conds["Degraded"].reason == "NotDegraded"
    assert all(cond.last_transition_time == NOW for cond in conds.values())


def test_partially_ready():
    conds = conditions_by_type(
        status.compute_conditions(
            setup_memcached({"replicas": 3}), make_deployment(1, updated=2), now=NOW
        )
    )
    assert conds["Available"].status == "True"
    assert conds["Progressing"].status == "True"
    assert conds["Progressing"].message == "Rollout in progress: 2/3 replicas updated"
    assert conds["Degraded"].status == "True"
    assert conds["Degraded"].message == "Only 1/3 replicas are ready"


def test_scaled_to_zero_not_degraded():
    conds = conditions_by_type(
        status.compute_conditions(
            setup_memcached({"replicas": 0}), make_deployment(0), now=NOW
        )
    )
    assert conds["Available"].status == "False"
    assert conds["Degraded"].status == "False"


def test_missing_secrets_degraded():
    conds = conditions_by_type(
        status.compute_conditions(
            setup_memcached({"replicas": 1}),
            make_deployment(1),
            missing_secrets=["a", "b"],
            now=NOW,
        )
    )
    assert conds["Degraded"].status == "True"
    assert conds["Degraded"].reason == "SecretNotFound"
    assert conds["Degraded"].message == "Referenced Secrets not found: a, b"


def test_hpa_uses_deployment_replicas():
    """With an autoscaler the desired count comes from the Deployment"""
    conds = conditions_by_type(
        status.compute_conditions(
            setup_memcached({"autoscaling": {"enabled": True, "maxReplicas": 5}}),
            make_deployment(4),
            hpa_active=True,
            now=NOW,
        )
    )
    assert conds["Available"].message == "4/4 replicas are ready (HPA-managed)"
    assert conds["Degraded"].status == "False"


def test_observed_generation_on_conditions():
    mc = setup_memcached(metadata={"generation": 7})
    for cond in status.compute_conditions(mc, None, now=NOW):
        assert cond.observed_generation == 7


## set_status_condition ########################################################


def test_set_status_condition_new():
    conditions = []
    cond = v1beta1.Condition(type="Available", status="True", reason="Available")
    assert status.set_status_condition(conditions, cond)
    assert len(conditions) == 1
    assert conditions[0].last_transition_time
    assert conditions[0] is not cond


def test_set_status_condition_same_status_keeps_time():
    """The transition time only moves when the status changes"""
    conditions = [
        v1beta1.Condition(
            type="Degraded", status="True", reason="Degraded", last_transition_time=NOW
        )
    ]
    changed = status.set_status_condition(
        conditions,
        v1beta1.Condition(
            type="Degraded",
            status="True",
            reason="SecretNotFound",
            message="missing",
            last_transition_time=LATER,
        ),
    )
    assert changed
    assert conditions[0].last_transition_time == NOW
    assert conditions[0].reason == "SecretNotFound"

    changed = status.set_status_condition(
        conditions,
        v1beta1.Condition(
            type="Degraded", status="False", reason="NotDegraded", last_transition_time=LATER
        ),
    )
    assert changed
    assert conditions[0].last_transition_time == LATER


def test_set_status_condition_unchanged():
    cond = v1beta1.Condition(type="Available", status="True", last_transition_time=NOW)
    conditions = [cond.model_copy()]
    assert not status.set_status_condition(conditions, cond)


## make_status #################################################################


def test_make_status():
    mc = setup_memcached({"replicas": 2}, metadata={"generation": 3})
    new_status = status.make_status(mc, make_deployment(2), now=NOW)
    assert new_status.ready_replicas == 2
    assert new_status.observed_generation == 3
    assert [cond.type for cond in new_status.conditions] == [
        "Available",
        "Progressing",
        "Degraded",
    ]
    # The document itself is not modified
    assert mc.status.conditions == []


def test_make_status_keeps_transition_times():
    mc = setup_memcached({"replicas": 1})
    first = status.make_status(mc, make_deployment(1), now=NOW)
    mc.status = first
    second = status.make_status(mc, make_deployment(1), now=LATER)
    assert not status.status_changed(first.to_dict(), second.to_dict())
    assert all(cond.last_transition_time == NOW for cond in second.conditions)


def test_make_error_status():
    mc = setup_memcached({"replicas": 1}, metadata={"generation": 2})
    mc.status = status.make_status(mc, make_deployment(1), now=NOW)
    error_status = status.make_error_status(mc, "boom", now=LATER)
    degraded = get_condition("Degraded", error_status.to_dict())
    assert degraded["status"] == "True"
    assert degraded["reason"] == "ReconcileError"
    assert degraded["message"] == "boom"
    assert degraded["lastTransitionTime"] == LATER
    assert get_condition("Available", error_status.to_dict())["status"] == "True"


## status_changed ##############################################################


def test_status_changed_ignores_timestamps():
    current = {"conditions": [{"type": "Available", "lastTransitionTime": NOW}]}
    assert not status.status_changed(
        current, {"conditions": [{"type": "Available", "lastTransitionTime": LATER}]}
    )
    assert status.status_changed(
        current, {"conditions": [{"type": "Degraded", "lastTransitionTime": NOW}]}
    )
    assert status.status_changed(current, None)
