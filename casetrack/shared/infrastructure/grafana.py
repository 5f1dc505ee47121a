"""
Grafana OTLP Metrics Exporter
==============================

Pushes daily SLA metrics to Grafana Cloud via OTLP.

Metrics exported:
- sla_compliance_percentage: per-state compliance for the day
- sla_cases_total: cases counted for the day, per state
- notifications_delivered_total / notifications_failed_total: queue outcome
"""

import base64
import time
from typing import Optional, Dict, Any, List

import httpx

from casetrack.config import settings
from casetrack.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class GrafanaOTLPExporter:
    """
    Export SLA metrics to Grafana Cloud via OTLP HTTP endpoint.

    Uses OpenTelemetry Protocol (OTLP) JSON format with gauge data points.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize Grafana OTLP exporter.

        Args:
            host: Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)
            api_key: Grafana API key
            instance_id: Instance ID for authentication
            transport: Optional httpx transport (tests use MockTransport)
        """
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._transport = transport
        self._enabled = bool(self._host and self._api_key and self._instance_id)

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" not in self._host:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            else:
                self._url = self._host
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )
        else:
            logger.info(
                "Grafana OTLP exporter not configured - metrics will not be exported",
                extra={
                    "host_configured": bool(self._host),
                    "api_key_configured": bool(self._api_key),
                    "instance_id_configured": bool(self._instance_id)
                }
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    @staticmethod
    def _gauge(name: str, unit: str, description: str, points: List[Dict[str, Any]]) -> Dict[str, Any]:
        return {
            "name": name,
            "unit": unit,
            "description": description,
            "gauge": {"dataPoints": points},
        }

    @staticmethod
    def _attributes(values: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            {"key": key, "value": {"stringValue": str(value)}}
            for key, value in values.items()
        ]

    async def export_sla_metrics(
        self,
        metric_date: str,
        state_rows: List[Dict[str, Any]],
        notifications_sent: int,
        notifications_failed: int
    ) -> bool:
        """
        Export one day of SLA metrics to Grafana.

        Args:
            metric_date: ISO date the rollup covers
            state_rows: dicts with state, total_cases, compliance_percentage
            notifications_sent: Notifications delivered that day
            notifications_failed: Notifications that failed that day

        Returns:
            True if export succeeded, False otherwise
        """
        if not self._enabled:
            logger.debug("Grafana exporter not enabled - skipping metrics export")
            return False

        timestamp_ns = int(time.time() * 1_000_000_000)
        base = {"service": settings.app_name, "metric_date": metric_date}

        compliance_points = []
        total_points = []
        for row in state_rows:
            attributes = self._attributes({**base, "state": row["state"]})
            compliance_points.append({
                "asDouble": float(row["compliance_percentage"]),
                "timeUnixNano": timestamp_ns,
                "attributes": attributes
            })
            total_points.append({
                "asInt": int(row["total_cases"]),
                "timeUnixNano": timestamp_ns,
                "attributes": attributes
            })

        base_attributes = self._attributes(base)
        metrics = [
            self._gauge(
                "sla_compliance_percentage", "%",
                "Share of cases counted that are not in SLA breach",
                compliance_points
            ),
            self._gauge("sla_cases_total", "1", "Cases counted in the rollup", total_points),
            self._gauge(
                "notifications_delivered_total", "1", "Notifications delivered",
                [{"asInt": notifications_sent, "timeUnixNano": timestamp_ns, "attributes": base_attributes}]
            ),
            self._gauge(
                "notifications_failed_total", "1", "Notifications that failed delivery",
                [{"asInt": notifications_failed, "timeUnixNano": timestamp_ns, "attributes": base_attributes}]
            ),
        ]

        payload = {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": [
                            {"key": "service.name", "value": {"stringValue": settings.app_name}},
                            {"key": "service.version", "value": {"stringValue": settings.app_version}},
                            {"key": "deployment.environment", "value": {"stringValue": settings.environment}},
                        ]
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self._transport) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error(
                "Error exporting metrics to Grafana",
                extra={"error": str(e), "url": self._url}
            )
            return False

        if response.status_code in (200, 202):
            logger.info(
                "SLA metrics exported to Grafana",
                extra={
                    "metric_date": metric_date,
                    "states": len(state_rows),
                    "status_code": response.status_code
                }
            )
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={
                "status_code": response.status_code,
                "response": response.text[:500],
                "url": self._url
            }
        )
        return False


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> GrafanaOTLPExporter:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter
