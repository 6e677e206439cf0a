from __future__ import annotations

import logging
from typing import Any, Optional

import aioboto3

from controlplane.services.config import AwsConfig, MetricsConfig
from controlplane.services.interfaces import MetricsEmitter

logger = logging.getLogger(__name__)


class CloudWatchMetricsService:
    """Fire-and-forget worker metrics. Never raises: a lost data point must not fail a worker."""

    def __init__(self, config: AwsConfig, *, metrics: MetricsConfig) -> None:
        self._config = config
        self._metrics = metrics
        self._session = aioboto3.Session()

    def _client(self) -> Any:
        return self._session.client(
            "cloudwatch",
            region_name=self._config.region_name,
            endpoint_url=self._config.endpoint_url,
        )

    async def emit(
        self,
        worker: str,
        metric: str,
        *,
        value: float = 1.0,
        unit: str = "Count",
        action: Optional[str] = None,
    ) -> None:
        if not self._metrics.enabled:
            return

        dimensions = [{"Name": "Worker", "Value": worker}]
        if action:
            dimensions.append({"Name": "Action", "Value": action})

        try:
            cw_client: Any = self._client()
            async with cw_client as cloudwatch:
                await cloudwatch.put_metric_data(
                    Namespace=self._metrics.namespace,
                    MetricData=[{"MetricName": metric, "Value": value, "Unit": unit, "Dimensions": dimensions}],
                )
        except Exception as exc:
            logger.warning("Metric emission failed (worker=%s, metric=%s): %s", worker, metric, exc)


async def record_outcome(
    metrics: MetricsEmitter,
    worker: str,
    *,
    success: bool,
    duration_ms: float,
    action: Optional[str] = None,
) -> None:
    await metrics.emit(worker, "WorkerSuccess" if success else "WorkerFailure", action=action)
    await metrics.emit(worker, "WorkerDuration", value=duration_ms, unit="Milliseconds", action=action)
