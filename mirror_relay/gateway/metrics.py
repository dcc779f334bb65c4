"""
Relay Metrics Collector

File: mirror_relay/gateway/metrics.py
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional


@dataclass
class DestinationMetrics:
    """Delivery metrics for one destination webhook"""
    delivered: int = 0
    errors: int = 0
    last_error: Optional[str] = None
    last_delivery: Optional[datetime] = None
    total_delivery_time_ms: float = 0.0

    @property
    def average_delivery_time_ms(self) -> float:
        if self.delivered == 0:
            return 0.0
        return self.total_delivery_time_ms / self.delivered


@dataclass
class GatewayMetrics:
    messages_received: int = 0
    messages_relayed: int = 0
    reconnect_count: int = 0
    last_message: Optional[datetime] = None
    dropped: Counter = field(default_factory=Counter)


class MetricsCollector:
    """Metrics collector"""

    def __init__(self):
        self._gateway = GatewayMetrics()
        self._destinations: Dict[str, DestinationMetrics] = {}
        self._start_time = datetime.now()

    def _destination(self, label: str) -> DestinationMetrics:
        if label not in self._destinations:
            self._destinations[label] = DestinationMetrics()
        return self._destinations[label]

    def record_message_received(self):
        self._gateway.messages_received += 1
        self._gateway.last_message = datetime.now()

    def record_dropped(self, reason: str):
        self._gateway.dropped[reason] += 1

    def record_relayed(self):
        self._gateway.messages_relayed += 1

    def record_delivery(self, destination: str, delivery_time_ms: float):
        metrics = self._destination(destination)
        metrics.delivered += 1
        metrics.total_delivery_time_ms += delivery_time_ms
        metrics.last_delivery = datetime.now()

    def record_error(self, destination: str, error: str):
        metrics = self._destination(destination)
        metrics.errors += 1
        metrics.last_error = error

    def record_reconnect(self):
        self._gateway.reconnect_count += 1

    @property
    def gateway(self) -> GatewayMetrics:
        return self._gateway

    def get_destination_metrics(self, destination: str) -> Optional[DestinationMetrics]:
        return self._destinations.get(destination)

    def get_summary(self) -> Dict:
        return {
            "uptime_seconds": (datetime.now() - self._start_time).total_seconds(),
            "gateway": {
                "messages_received": self._gateway.messages_received,
                "messages_relayed": self._gateway.messages_relayed,
                "reconnect_count": self._gateway.reconnect_count,
                "dropped": dict(self._gateway.dropped),
                "last_message": self._gateway.last_message.isoformat() if self._gateway.last_message else None,
            },
            "destinations": {
                label: {
                    "delivered": m.delivered,
                    "errors": m.errors,
                    "last_error": m.last_error,
                    "average_delivery_time_ms": m.average_delivery_time_ms,
                    "last_delivery": m.last_delivery.isoformat() if m.last_delivery else None,
                }
                for label, m in self._destinations.items()
            },
            "totals": {
                "total_delivered": sum(m.delivered for m in self._destinations.values()),
                "total_errors": sum(m.errors for m in self._destinations.values()),
                "total_dropped": sum(self._gateway.dropped.values()),
            }
        }
