"""
Mirror Relay Health Check

Provides:
- Gateway session status
- Routing status
- Destination delivery status

File: mirror_relay/gateway/health.py
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from .session import ConnectionState

if TYPE_CHECKING:
    from .server import MirrorState

logger = logging.getLogger("mirror.health")


class HealthStatusLevel(Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


_SEVERITY = {
    HealthStatusLevel.HEALTHY: 0,
    HealthStatusLevel.DEGRADED: 1,
    HealthStatusLevel.UNHEALTHY: 2,
}


@dataclass
class HealthCheck:
    """Single health check result"""
    name: str
    status: HealthStatusLevel
    message: Optional[str] = None


@dataclass
class HealthStatus:
    """Overall health status"""
    status: str  # healthy, degraded, unhealthy
    uptime_seconds: float
    timestamp: datetime
    session: Dict[str, Any]
    checks: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "uptime_seconds": self.uptime_seconds,
            "timestamp": self.timestamp.isoformat(),
            "session": self.session,
            "checks": self.checks,
        }


class HealthChecker:
    """Health checker"""

    def __init__(self, mirror_state: "MirrorState"):
        self.state = mirror_state

    async def check(self) -> HealthStatus:
        """Execute health check"""
        checks = [
            self._check_gateway(),
            self._check_routing(),
            *self._check_destinations(),
        ]

        overall = HealthStatusLevel.HEALTHY
        for check in checks:
            if _SEVERITY[check.status] > _SEVERITY[overall]:
                overall = check.status

        return HealthStatus(
            status=overall.value,
            uptime_seconds=(datetime.now() - self.state.started_at).total_seconds(),
            timestamp=datetime.now(),
            session=self._session_summary(),
            checks=[{
                "name": c.name,
                "status": c.status.value,
                "message": c.message,
            } for c in checks],
        )

    def _session_summary(self) -> Dict[str, Any]:
        session = self.state.session
        if session is None:
            return {}
        return {
            "connection_state": session.connection_state.value,
            "resumable": session.state.resumable,
            "sequence": session.state.sequence,
            "connect_attempts": session.connect_attempts,
        }

    def _check_gateway(self) -> HealthCheck:
        """Check gateway session"""
        if self.state.is_shutting_down:
            return HealthCheck(
                name="gateway",
                status=HealthStatusLevel.UNHEALTHY,
                message="Relay is shutting down"
            )

        session = self.state.session
        if session is None or session.connection_state == ConnectionState.DISCONNECTED:
            return HealthCheck(
                name="gateway",
                status=HealthStatusLevel.UNHEALTHY,
                message="Not connected"
            )
        if session.connection_state != ConnectionState.READY:
            return HealthCheck(
                name="gateway",
                status=HealthStatusLevel.DEGRADED,
                message=f"Session {session.connection_state.value}"
            )
        return HealthCheck(
            name="gateway",
            status=HealthStatusLevel.HEALTHY,
            message="Session ready"
        )

    def _check_routing(self) -> HealthCheck:
        relay = self.state.relay
        if relay is None or len(relay.routing) == 0:
            return HealthCheck(
                name="routing",
                status=HealthStatusLevel.DEGRADED,
                message="No source channels configured"
            )
        return HealthCheck(
            name="routing",
            status=HealthStatusLevel.HEALTHY,
            message=f"{len(relay.routing)} source channels, "
                    f"{len(relay.routing.all_destinations())} destinations"
        )

    def _check_destinations(self) -> List[HealthCheck]:
        """Destinations failing more often than they deliver are degraded"""
        if not self.state.metrics or not self.state.relay:
            return []

        checks = []
        for destination in self.state.relay.routing.all_destinations():
            metrics = self.state.metrics.get_destination_metrics(destination.label)
            if metrics is None or metrics.errors == 0:
                continue
            failing = metrics.errors > metrics.delivered
            checks.append(HealthCheck(
                name=f"destination:{destination.label}",
                status=HealthStatusLevel.DEGRADED if failing else HealthStatusLevel.HEALTHY,
                message=metrics.last_error,
            ))
        return checks
