"""Idle detection over CloudWatch metric statistics."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from botocore.exceptions import BotoCoreError, ClientError

from ..aws.client import ClientContext
from ..errors import MetricQueryError, NukerError
from ..models.candidate import IdleVerdict
from ..models.policy import IdleRule
from ..models.resource import Resource
from ..utils.duration import format_duration

logger = logging.getLogger(__name__)

# get_metric_statistics returns at most 1440 datapoints per call
MAX_DATAPOINTS_PER_CALL = 1440


def decide_idle(resource: Resource, rule: IdleRule, values: Sequence[float], now: datetime) -> IdleVerdict:
    """Decide idleness from the per-period statistic values of the lookback window.

    The resource is idle when every observed period satisfies the rule's comparison and
    the window is fully covered. Missing periods count as idle only for resources older
    than the lookback window.

    Args:
        resource: Resource being tested
        rule: Idle rule
        values: Statistic value per period, oldest first
        now: Evaluation time

    Returns:
        IdleVerdict for the resource
    """
    observed = tuple(values)
    verdict = dict(resource_id=resource.id, metric=rule.metric_name, observed=observed)

    busy = [v for v in observed if not rule.comparison.apply(v, rule.threshold)]
    if busy:
        return IdleVerdict(
            **verdict,
            is_idle=False,
            reason=f"{rule.metric_name} {rule.statistic.value} reached {max(busy):g} in {len(busy)} period(s)",
        )

    window = format_duration(rule.lookback_seconds)
    if len(observed) >= rule.expected_periods:
        return IdleVerdict(
            **verdict,
            is_idle=True,
            reason=(
                f"{rule.metric_name} {rule.statistic.value} {rule.comparison.value} "
                f"{rule.threshold:g} for every period over {window}"
            ),
        )

    age = resource.age_seconds(now)
    if age is None or age <= rule.lookback_seconds:
        return IdleVerdict(**verdict, is_idle=False, reason="insufficient history")

    return IdleVerdict(
        **verdict,
        is_idle=True,
        reason=(
            f"{rule.metric_name} {rule.statistic.value} {rule.comparison.value} {rule.threshold:g} "
            f"over {window} ({len(observed)}/{rule.expected_periods} periods reported)"
        ),
    )


class IdleDetector:
    """Runs idle rules against CloudWatch for the resources of one region."""

    def __init__(self, context: ClientContext, region: str):
        self.context = context
        self.region = region

    def get_statistics(
        self,
        namespace: str,
        dimensions: List[Dict[str, str]],
        rule: IdleRule,
        now: datetime,
    ) -> List[float]:
        """Per-period statistic values over ``[now - lookback, now]``, oldest first.

        Raises:
            MetricQueryError: If CloudWatch cannot be queried
        """
        start = now - timedelta(seconds=rule.lookback_seconds)
        chunk = timedelta(seconds=rule.period_seconds * MAX_DATAPOINTS_PER_CALL)

        datapoints: List[Dict[str, Any]] = []
        chunk_start = start
        while chunk_start < now:
            chunk_end = min(chunk_start + chunk, now)
            try:
                response = self.context.call(
                    "cloudwatch",
                    self.region,
                    "get_metric_statistics",
                    Namespace=namespace,
                    MetricName=rule.metric_name,
                    Dimensions=dimensions,
                    StartTime=chunk_start,
                    EndTime=chunk_end,
                    Period=rule.period_seconds,
                    Statistics=[rule.statistic.value],
                )
            except (ClientError, BotoCoreError, NukerError) as e:
                raise MetricQueryError(f"Failed to query {namespace}/{rule.metric_name}: {e}")
            datapoints.extend(response.get("Datapoints", []))
            chunk_start = chunk_end

        datapoints.sort(key=lambda dp: dp["Timestamp"])
        return [dp[rule.statistic.value] for dp in datapoints if rule.statistic.value in dp]

    def evaluate_idle(
        self,
        resource: Resource,
        rule: IdleRule,
        namespace: Optional[str],
        dimensions: Optional[List[Dict[str, str]]],
        now: datetime,
    ) -> IdleVerdict:
        """Query the rule's metric for the resource and decide idleness.

        Query failures never mark a resource idle.
        """
        namespace = rule.namespace or namespace
        if not namespace or not dimensions:
            return IdleVerdict(
                resource_id=resource.id,
                metric=rule.metric_name,
                is_idle=False,
                reason="no metrics for this resource",
            )

        try:
            values = self.get_statistics(namespace, dimensions, rule, now)
        except MetricQueryError as e:
            logger.warning(f"Idle check for {resource.id} skipped: {e}")
            return IdleVerdict(
                resource_id=resource.id,
                metric=rule.metric_name,
                is_idle=False,
                reason="metric query failed",
                error=str(e),
            )

        verdict = decide_idle(resource, rule, values, now)
        logger.debug(f"Idle verdict for {resource.id}: {verdict.is_idle} ({verdict.reason})")
        return verdict
