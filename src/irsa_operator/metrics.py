"""Prometheus metrics for the IRSA Operator."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

CLUSTER_LABELS = ["installation", "account_id", "cluster_id", "cluster_namespace"]

# Per-cluster error gauge: incremented on failure, reset on success
cluster_errors = Gauge(
    "irsa_operator_cluster_errors",
    "Number of consecutive reconcile errors per cluster",
    CLUSTER_LABELS,
)

acm_certificate_not_after = Gauge(
    "irsa_operator_acm_certificate_not_after",
    "Expiry of the CloudFront alias ACM certificate as a unix timestamp",
    CLUSTER_LABELS,
)

# Reconciliation metrics
reconcile_total = Counter(
    "irsa_operator_reconcile_total",
    "Total number of reconciliations",
    ["flavor", "result"],
)

reconcile_duration_seconds = Histogram(
    "irsa_operator_reconcile_duration_seconds",
    "Duration of reconciliations in seconds",
    ["flavor"],
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0],
)

# AWS API call metrics
aws_api_call_total = Counter(
    "irsa_operator_aws_api_call_total",
    "Total number of AWS API calls",
    ["service", "operation", "result"],
)


class MetricsSink:
    """Metrics handle injected into the orchestrator.

    Wraps the process-wide prometheus collectors so orchestration code never
    touches module globals directly.
    """

    def __init__(self, installation: str) -> None:
        self.installation = installation

    def _labels(self, account_id: str, cluster: str, namespace: str) -> dict[str, str]:
        return {
            "installation": self.installation,
            "account_id": account_id,
            "cluster_id": cluster,
            "cluster_namespace": namespace,
        }

    def cluster_error(self, account_id: str, cluster: str, namespace: str) -> None:
        cluster_errors.labels(**self._labels(account_id, cluster, namespace)).inc()

    def cluster_ok(self, account_id: str, cluster: str, namespace: str) -> None:
        cluster_errors.labels(**self._labels(account_id, cluster, namespace)).set(0)

    def forget_cluster(self, account_id: str, cluster: str, namespace: str) -> None:
        """Drop every per-cluster series after teardown."""
        labels = self._labels(account_id, cluster, namespace)
        for gauge in (cluster_errors, acm_certificate_not_after):
            try:
                gauge.remove(*labels.values())
            except KeyError:
                # Series was never created for this cluster
                pass

    def certificate_expiry(self, account_id: str, cluster: str, namespace: str, not_after: float) -> None:
        acm_certificate_not_after.labels(**self._labels(account_id, cluster, namespace)).set(not_after)

    def aws_call(self, service: str, operation: str, result: str) -> None:
        aws_api_call_total.labels(service=service, operation=operation, result=result).inc()

    def reconcile(self, flavor: str, result: str) -> None:
        reconcile_total.labels(flavor=flavor, result=result).inc()

    def reconcile_duration(self, flavor: str, seconds: float) -> None:
        reconcile_duration_seconds.labels(flavor=flavor).observe(seconds)
