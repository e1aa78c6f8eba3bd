"""Metrics sink - best-effort forwarding of check metrics to Graphite.

Lines use the Graphite plaintext protocol::

    <namespace>.<sanitized name>.<metric> <value> <unix seconds>\\n

Delivery is either an HTTP POST of the plaintext body (default) or a raw
TCP write to the carbon plaintext port. Nothing here ever raises to the
caller; failures are logged and dropped.
"""
import asyncio
import logging
import re
import time
from typing import Mapping, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_name(name: str) -> str:
    """Replace every character outside [A-Za-z0-9_-] with an underscore."""
    return _UNSAFE_CHARS.sub("_", name)


def format_lines(namespace: str, monitor_name: str, metrics: Mapping[str, float], timestamp: int) -> str:
    """Render metrics as newline-terminated plaintext records."""
    prefix = f"{namespace}.{sanitize_name(monitor_name)}"
    return "".join(f"{prefix}.{key} {value} {timestamp}\n" for key, value in metrics.items())


class GraphiteSink:
    """Forwards metrics to a Graphite endpoint; a no-op without a host."""

    def __init__(
        self,
        host: Optional[str] = None,
        port: int = 2003,
        protocol: str = "http",
        namespace: str = "uptime",
        timeout: float = 5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.host = host
        self.port = port
        self.protocol = protocol.lower()
        self.namespace = namespace
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls) -> "GraphiteSink":
        return cls(
            host=settings.graphite_host,
            port=settings.graphite_port,
            protocol=settings.graphite_protocol,
            namespace=settings.graphite_namespace,
            timeout=settings.graphite_timeout_seconds,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    async def forward(self, monitor_name: str, metrics: Mapping[str, float]) -> bool:
        """Send one batch of metrics. Returns True if it was delivered."""
        if not self.enabled or not metrics:
            return False

        payload = format_lines(self.namespace, monitor_name, metrics, int(time.time()))
        try:
            if self.protocol == "tcp":
                await asyncio.wait_for(self._send_tcp(payload), timeout=self.timeout)
                return True
            return await self._send_http(payload)
        except Exception as e:
            logger.warning(f"Error sending metrics to Graphite for {monitor_name}: {e!r}")
            return False

    async def _send_http(self, payload: str) -> bool:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(
                f"http://{self.host}:{self.port}",
                content=payload,
                headers={"Content-Type": "text/plain"},
            )
        if not response.is_success:
            logger.warning(f"Failed to send metrics to Graphite: {response.status_code}")
            return False
        return True

    async def _send_tcp(self, payload: str) -> None:
        reader, writer = await asyncio.open_connection(self.host, self.port)
        try:
            writer.write(payload.encode("utf-8"))
            await writer.drain()
        finally:
            writer.close()
            await writer.wait_closed()


# Global instance
metrics_sink = GraphiteSink.from_settings()
