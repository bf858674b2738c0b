"""Tests for RuleEvaluator."""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from nuker.errors import EvaluationError
from nuker.models.candidate import IdleVerdict
from nuker.models.policy import (
    ApprovedTypes,
    IdleRule,
    ManageStopped,
    MatchKind,
    MaxRuntime,
    Policy,
    RequiredTag,
    RequiredTags,
    RuleKind,
    Statistic,
    UnassociatedRule,
    WhitelistEntry,
)
from nuker.models.resource import ResourceState, ResourceType
from nuker.rules.evaluator import RuleEvaluator
from tests.fixtures.resources import NOW, create_resource

OWNER_REQUIRED = RequiredTags(tags=(RequiredTag("Owner"),))

CPU_RULE = IdleRule("CPUUtilization", Statistic.MAXIMUM, 3600, 14 * 86400, 5.0)


def _policy(**kwargs) -> Policy:
    kwargs.setdefault("resource_type", ResourceType.EC2_INSTANCE)
    return Policy(**kwargs)


class TestRequiredTags:
    """Test suite for tag gating."""

    def test_missing_tag_marks(self) -> None:
        """Test an untagged instance is marked for required tags only."""
        evaluator = RuleEvaluator(now=NOW)

        candidate = evaluator.evaluate(create_resource(), _policy(required_tags=OWNER_REQUIRED))

        assert candidate.matched_rule_kinds == {RuleKind.REQUIRED_TAGS}
        assert candidate.is_marked is True
        assert candidate.is_actionable is True
        assert "Owner" in candidate.reasons[RuleKind.REQUIRED_TAGS]

    def test_satisfied_tags_unmarked(self) -> None:
        """Test a tagged instance with no other rules is not marked."""
        evaluator = RuleEvaluator(now=NOW)

        candidate = evaluator.evaluate(
            create_resource(tags={"Owner": "alice"}), _policy(required_tags=OWNER_REQUIRED)
        )

        assert candidate.is_marked is False
        assert candidate.reasons == {}

    def test_value_pattern(self) -> None:
        """Test a tag value that fails the pattern counts as missing."""
        policy = _policy(required_tags=RequiredTags(tags=(RequiredTag("CostCenter", r"\d{4}"),)))
        evaluator = RuleEvaluator(now=NOW)

        bad = evaluator.evaluate(create_resource(tags={"CostCenter": "abc"}), policy)
        good = evaluator.evaluate(create_resource(tags={"CostCenter": "1234"}), policy)

        assert bad.matched_rule_kinds == {RuleKind.REQUIRED_TAGS}
        assert good.is_marked is False

    def test_all_kinds_recorded(self) -> None:
        """Test other kinds are still recorded next to a tag violation."""
        policy = _policy(
            required_tags=OWNER_REQUIRED,
            approved_types=ApprovedTypes(types=frozenset({"t3.micro"})),
        )

        candidate = RuleEvaluator(now=NOW).evaluate(create_resource(instance_type="m5.large"), policy)

        assert candidate.matched_rule_kinds == {RuleKind.REQUIRED_TAGS, RuleKind.APPROVED_TYPES}


class TestRules:
    """Test suite for the remaining generic rules."""

    def test_approved_types(self) -> None:
        """Test an unapproved instance class is marked."""
        policy = _policy(approved_types=ApprovedTypes(types=frozenset({"t3.micro"})))
        evaluator = RuleEvaluator(now=NOW)

        marked = evaluator.evaluate(create_resource(instance_type="m5.large"), policy)
        allowed = evaluator.evaluate(create_resource(instance_type="t3.micro"), policy)

        assert marked.matched_rule_kinds == {RuleKind.APPROVED_TYPES}
        assert "m5.large" in marked.reasons[RuleKind.APPROVED_TYPES]
        assert allowed.is_marked is False

    def test_approved_types_for_clusters(self) -> None:
        """Test every instance class of a cluster must be approved."""
        policy = _policy(
            resource_type=ResourceType.EMR_CLUSTER,
            approved_types=ApprovedTypes(types=frozenset({"m5.xlarge"})),
        )
        cluster = create_resource(
            "j-1", ResourceType.EMR_CLUSTER, instance_types=("m5.xlarge", "r5.4xlarge")
        )

        candidate = RuleEvaluator(now=NOW).evaluate(cluster, policy)

        assert candidate.matched_rule_kinds == {RuleKind.APPROVED_TYPES}

    def test_max_runtime(self) -> None:
        """Test resources older than the limit are marked."""
        policy = _policy(max_runtime=MaxRuntime(seconds=7 * 86400))
        evaluator = RuleEvaluator(now=NOW)

        old = evaluator.evaluate(create_resource(age=timedelta(days=8)), policy)
        young = evaluator.evaluate(create_resource(age=timedelta(days=6)), policy)
        unknown = evaluator.evaluate(create_resource(age=None), policy)

        assert old.matched_rule_kinds == {RuleKind.MAX_RUNTIME}
        assert old.reasons[RuleKind.MAX_RUNTIME] == "running for 8d, limit 7d"
        assert young.is_marked is False
        assert unknown.is_marked is False

    def test_manage_stopped(self) -> None:
        """Test resources stopped longer than the limit are marked."""
        policy = _policy(manage_stopped=ManageStopped(seconds=3 * 86400))
        evaluator = RuleEvaluator(now=NOW)

        long_stopped = create_resource(state=ResourceState.STOPPED, stopped_at=NOW - timedelta(days=5))
        just_stopped = create_resource(state=ResourceState.STOPPED, stopped_at=NOW - timedelta(hours=2))
        running = create_resource(stopped_at=NOW - timedelta(days=5))

        assert evaluator.evaluate(long_stopped, policy).matched_rule_kinds == {RuleKind.MANAGE_STOPPED}
        assert evaluator.evaluate(just_stopped, policy).is_marked is False
        assert evaluator.evaluate(running, policy).is_marked is False

    def test_stopped_without_stop_time(self) -> None:
        """Test a stopped resource with an unknown stop time is not marked."""
        policy = _policy(manage_stopped=ManageStopped(seconds=3600))
        resource = create_resource(state=ResourceState.STOPPED, stopped_at=None)

        assert RuleEvaluator(now=NOW).evaluate(resource, policy).is_marked is False

    def test_idle_verdict(self) -> None:
        """Test an idle verdict marks the resource with its reason."""
        policy = _policy(idle_rule=CPU_RULE)
        resource = create_resource()
        verdict = IdleVerdict(resource.id, "CPUUtilization", (1.0,), True, "CPU below 5")

        candidate = RuleEvaluator(now=NOW).evaluate(resource, policy, verdict)

        assert candidate.matched_rule_kinds == {RuleKind.IDLE}
        assert candidate.reasons[RuleKind.IDLE] == "CPU below 5"

    def test_busy_or_missing_verdict(self) -> None:
        """Test a busy verdict or no verdict leaves the resource unmarked."""
        policy = _policy(idle_rule=CPU_RULE)
        resource = create_resource()
        busy = IdleVerdict(resource.id, "CPUUtilization", (50.0,), False, "busy")
        evaluator = RuleEvaluator(now=NOW)

        assert evaluator.evaluate(resource, policy, busy).is_marked is False
        assert evaluator.evaluate(resource, policy, None).is_marked is False

    def test_type_rules_from_registry(self) -> None:
        """Test type-specific rules are delegated to the type's scanner."""
        policy = Policy(resource_type=ResourceType.EBS_VOLUME, type_rules=(UnassociatedRule(),))
        volume = create_resource("vol-1", ResourceType.EBS_VOLUME, state=ResourceState.AVAILABLE, associated=False)

        candidate = RuleEvaluator(now=NOW).evaluate(volume, policy)

        assert candidate.matched_rule_kinds == {RuleKind.UNASSOCIATED}

    def test_custom_registry(self) -> None:
        """Test an empty registry disables type rules."""
        policy = Policy(resource_type=ResourceType.EBS_VOLUME, type_rules=(UnassociatedRule(),))
        volume = create_resource("vol-1", ResourceType.EBS_VOLUME, associated=False)

        candidate = RuleEvaluator(now=NOW, registry={}).evaluate(volume, policy)

        assert candidate.is_marked is False


class TestEvaluation:
    """Test suite for evaluation invariants."""

    def test_idempotent(self) -> None:
        """Test evaluating the same inputs twice gives equal candidates."""
        policy = _policy(required_tags=OWNER_REQUIRED, max_runtime=MaxRuntime(seconds=86400))
        resource = create_resource()
        evaluator = RuleEvaluator(now=NOW)

        assert evaluator.evaluate(resource, policy) == evaluator.evaluate(resource, policy)

    def test_whitelisted_still_marked(self) -> None:
        """Test a whitelisted resource keeps its matched kinds but is not actionable."""
        policy = _policy(
            required_tags=OWNER_REQUIRED,
            whitelist=(WhitelistEntry(MatchKind.ID, "i-0123456789abcdef0", description="bastion"),),
        )

        candidate = RuleEvaluator(now=NOW).evaluate(create_resource(), policy)

        assert candidate.matched_rule_kinds == {RuleKind.REQUIRED_TAGS}
        assert candidate.whitelisted is True
        assert candidate.is_actionable is False
        assert "bastion" in candidate.whitelist_reason

    def test_terminal_state_never_marked(self) -> None:
        """Test resources being deleted are not marked."""
        policy = _policy(required_tags=OWNER_REQUIRED)

        for state in (ResourceState.DELETING, ResourceState.DELETED):
            candidate = RuleEvaluator(now=NOW).evaluate(create_resource(state=state), policy)
            assert candidate.is_marked is False

    def test_type_mismatch(self) -> None:
        """Test evaluating a resource against another type's policy fails."""
        policy = Policy(resource_type=ResourceType.S3_BUCKET)

        with pytest.raises(EvaluationError, match="policy is for s3-bucket"):
            RuleEvaluator(now=NOW).evaluate(create_resource(), policy)

    def test_bad_attribute_is_evaluation_error(self) -> None:
        """Test a rule that cannot be applied to an attribute raises EvaluationError."""
        policy = _policy(manage_stopped=ManageStopped(seconds=3600))
        resource = create_resource(state=ResourceState.STOPPED, stopped_at=datetime(2025, 1, 1))

        with pytest.raises(EvaluationError, match="Failed to evaluate"):
            RuleEvaluator(now=NOW).evaluate(resource, policy)

    def test_default_now(self) -> None:
        """Test the evaluator defaults to the current UTC time."""
        evaluator = RuleEvaluator()

        assert evaluator.now.tzinfo is not None
