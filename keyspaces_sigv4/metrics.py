"""
CloudWatch metrics for SigV4 SASL handshakes.

Metrics are published using the Embedded Metric Format (EMF): each record is
a JSON line on stdout that CloudWatch Logs turns into metrics, so no
PutMetricData calls are made.

Metrics cover two areas:
- Handshakes: challenge evaluations and their outcome
- Credential resolution: lookups against the credential chain
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

logger = logging.getLogger(__name__)


class MetricUnit(str, Enum):
    """CloudWatch metric units."""
    COUNT = "Count"
    MILLISECONDS = "Milliseconds"


class AuthMetricName(str, Enum):
    """Metric names for the authenticator."""
    # Handshake Metrics
    HANDSHAKE_COUNT = "HandshakeCount"
    HANDSHAKE_SUCCESS = "HandshakeSuccess"
    HANDSHAKE_FAILURE = "HandshakeFailure"
    HANDSHAKE_LATENCY = "HandshakeLatency"
    MISSING_NONCE = "MissingNonce"

    # Credential Resolution Metrics
    CREDENTIAL_RESOLUTION_COUNT = "CredentialResolutionCount"
    CREDENTIAL_RESOLUTION_FAILURE = "CredentialResolutionFailure"
    CREDENTIAL_RESOLUTION_LATENCY = "CredentialResolutionLatency"


@dataclass
class MetricDimensions:
    """Dimensions for CloudWatch metrics."""
    environment: str = field(default_factory=lambda: os.getenv("ENVIRONMENT", "development"))
    region: Optional[str] = None
    credential_source: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary, excluding None values."""
        result = {"Environment": self.environment}
        if self.region:
            result["Region"] = self.region
        if self.credential_source:
            result["CredentialSource"] = self.credential_source
        if self.error_type:
            result["ErrorType"] = self.error_type
        return result


class MetricsEmitter:
    """
    Writes handshake metrics as EMF records.

    One record is printed per call; every metric in the record shares the
    same dimension set.
    """

    NAMESPACE = "KeyspacesSigV4Auth"

    def __init__(self, service_name: str = "keyspaces-sigv4-auth"):
        self.service_name = service_name
        self._dimensions = MetricDimensions()

    def build_record(
        self,
        values: dict[AuthMetricName, tuple[float, MetricUnit]],
        dimensions: Optional[MetricDimensions] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """
        Build one EMF record.

        Args:
            values: Metric name to (value, unit)
            dimensions: Dimension set; the emitter defaults when omitted
            properties: Extra top-level fields, not turned into metrics

        Returns:
            The record as a JSON-serializable dict
        """
        dim_values = (dimensions or self._dimensions).to_dict()
        directive = {
            "Namespace": self.NAMESPACE,
            "Dimensions": [sorted(dim_values)],
            "Metrics": [{"Name": name.value, "Unit": unit.value} for name, (_, unit) in values.items()],
        }

        record: dict[str, Any] = dict(properties or {})
        record.update(dim_values)
        record.update({name.value: value for name, (value, _) in values.items()})
        record["service"] = self.service_name
        record["_aws"] = {
            "Timestamp": int(time.time() * 1000),
            "CloudWatchMetrics": [directive],
        }
        return record

    def emit(
        self,
        metric_name: AuthMetricName,
        value: float,
        unit: MetricUnit = MetricUnit.COUNT,
        dimensions: Optional[MetricDimensions] = None,
    ) -> None:
        """Emit a single metric."""
        self.emit_multiple({metric_name: (value, unit)}, dimensions)

    def emit_multiple(
        self,
        values: dict[AuthMetricName, tuple[float, MetricUnit]],
        dimensions: Optional[MetricDimensions] = None,
        properties: Optional[dict[str, Any]] = None,
    ) -> None:
        """Emit several metrics in one record."""
        print(json.dumps(self.build_record(values, dimensions, properties)), flush=True)

    def record_handshake(
        self,
        success: bool,
        latency_ms: float,
        region: Optional[str] = None,
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record the outcome of a challenge evaluation.

        Args:
            success: Whether a response buffer was produced
            latency_ms: Time taken in milliseconds
            region: Signing region
            error_type: Exception class name if the handshake failed
        """
        outcome = AuthMetricName.HANDSHAKE_SUCCESS if success else AuthMetricName.HANDSHAKE_FAILURE
        values = _counted(AuthMetricName.HANDSHAKE_COUNT, outcome)
        if error_type == "MissingNonceError":
            values.update(_counted(AuthMetricName.MISSING_NONCE))
        values[AuthMetricName.HANDSHAKE_LATENCY] = (latency_ms, MetricUnit.MILLISECONDS)

        self.emit_multiple(
            values,
            MetricDimensions(region=region, error_type=_short(error_type)),
            {"errorType": error_type} if error_type else None,
        )

    def record_credential_resolution(
        self,
        success: bool,
        latency_ms: float,
        source: Optional[str] = None,
        error_type: Optional[str] = None,
    ) -> None:
        """Record a lookup against a non-static credential chain."""
        values = _counted(AuthMetricName.CREDENTIAL_RESOLUTION_COUNT)
        if not success:
            values.update(_counted(AuthMetricName.CREDENTIAL_RESOLUTION_FAILURE))
        values[AuthMetricName.CREDENTIAL_RESOLUTION_LATENCY] = (latency_ms, MetricUnit.MILLISECONDS)

        self.emit_multiple(
            values,
            MetricDimensions(credential_source=source, error_type=_short(error_type)),
        )


def _counted(*names: AuthMetricName) -> dict[AuthMetricName, tuple[float, MetricUnit]]:
    return {name: (1, MetricUnit.COUNT) for name in names}


def _short(error_type: Optional[str]) -> Optional[str]:
    # CloudWatch dimension values are kept short
    return error_type[:50] if error_type else None


_metrics_emitter: Optional[MetricsEmitter] = None


def get_metrics_emitter() -> MetricsEmitter:
    """Get the global metrics emitter instance."""
    global _metrics_emitter
    if _metrics_emitter is None:
        _metrics_emitter = MetricsEmitter()
    return _metrics_emitter


def init_metrics(service_name: str = "keyspaces-sigv4-auth") -> MetricsEmitter:
    """
    Initialize the global metrics emitter.

    Args:
        service_name: Service name for metric attribution

    Returns:
        Configured MetricsEmitter instance
    """
    global _metrics_emitter
    _metrics_emitter = MetricsEmitter(service_name)
    logger.debug("Metrics emitter initialized for %s", service_name)
    return _metrics_emitter
