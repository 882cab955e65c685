from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from threading import Lock


@dataclass
class EndpointMetric:
    total_requests: int = 0
    total_duration_ms: float = 0.0
    error_count: int = 0


class InMemoryKitchenMetrics:
    """Métricas de processo: latência por endpoint e transições de pedido por tenant."""

    def __init__(self) -> None:
        self._endpoints: dict[tuple[str, str], EndpointMetric] = {}
        self._transitions: dict[str, Counter] = {}
        self._lock = Lock()

    def observe(self, endpoint: str, method: str, status_code: int, duration_ms: float) -> None:
        key = (endpoint, method)
        with self._lock:
            metric = self._endpoints.setdefault(key, EndpointMetric())
            metric.total_requests += 1
            metric.total_duration_ms += duration_ms
            if status_code >= 400:
                metric.error_count += 1

    def record_transition(self, tenant_id: int | str, from_status: str, to_status: str) -> None:
        with self._lock:
            counter = self._transitions.setdefault(str(tenant_id), Counter())
            counter[f"{from_status}->{to_status}"] += 1

    def snapshot(self) -> dict[str, dict[str, float | int]]:
        with self._lock:
            result: dict[str, dict[str, float | int]] = {}
            for (endpoint, method), metric in self._endpoints.items():
                avg = metric.total_duration_ms / metric.total_requests if metric.total_requests else 0.0
                result[f"{method} {endpoint}"] = {
                    "total_requests": metric.total_requests,
                    "avg_duration_ms": round(avg, 2),
                    "error_count": metric.error_count,
                }
            return result

    def transitions_for(self, tenant_id: int | str) -> dict[str, int]:
        with self._lock:
            return dict(self._transitions.get(str(tenant_id), Counter()))

    def reset(self) -> None:
        with self._lock:
            self._endpoints.clear()
            self._transitions.clear()


kitchen_metrics = InMemoryKitchenMetrics()
