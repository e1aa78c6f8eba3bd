"""Probe service - performs a single bounded-time HTTP(S) reachability check."""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import httpx

from ..config import settings
from ..models import STATUS_UP, STATUS_DOWN, STATUS_ERROR

logger = logging.getLogger(__name__)


@dataclass
class ProbeOutcome:
    """Classified result of one probe."""
    status: str  # UP, DOWN, ERROR
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None


def classify_status_code(status_code: int) -> str:
    """Any 2xx is UP; every other received status is DOWN, never ERROR."""
    if 200 <= status_code <= 299:
        return STATUS_UP
    return STATUS_DOWN


def _elapsed_ms(start: datetime) -> int:
    return int((datetime.now() - start).total_seconds() * 1000)


def _describe(error: Exception) -> str:
    # httpx transport errors frequently stringify to ""
    return str(error) or error.__class__.__name__


class ProbeService:
    """Issues one GET per call, without retries.

    The whole request (connect, TLS, headers and body) is bounded by
    ``timeout``; on expiry the request is cancelled and the client closed.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        user_agent: Optional[str] = None,
        verify: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = settings.probe_timeout_seconds if timeout is None else timeout
        self.user_agent = user_agent or settings.probe_user_agent
        self.verify = settings.probe_verify_tls if verify is None else verify
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            verify=self.verify,
            headers={"User-Agent": self.user_agent},
            transport=self.transport,
        )

    async def probe(self, url: str) -> ProbeOutcome:
        """Check ``url`` and classify the outcome.

        Request failures (DNS, connect, TLS, timeout, redirect loops, bad
        encodings) come back as DOWN with the elapsed time and an error
        message. Anything else that goes wrong while probing is recorded as
        ERROR without a latency.
        """
        start = datetime.now()
        try:
            async with self._client() as client:
                response = await asyncio.wait_for(client.get(url), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return ProbeOutcome(
                status=STATUS_DOWN,
                response_time_ms=_elapsed_ms(start),
                error_message=f"Request timeout after {self.timeout:g}s",
            )
        except httpx.TransportError as e:
            return ProbeOutcome(
                status=STATUS_DOWN,
                response_time_ms=_elapsed_ms(start),
                error_message=f"Connection error: {_describe(e)}",
            )
        except httpx.RequestError as e:
            # Redirect loops, undecodable bodies
            return ProbeOutcome(
                status=STATUS_DOWN,
                response_time_ms=_elapsed_ms(start),
                error_message=f"Request error: {_describe(e)}",
            )
        except Exception as e:
            logger.warning(f"Unexpected error probing {url}: {e!r}")
            return ProbeOutcome(status=STATUS_ERROR, error_message=_describe(e))

        return ProbeOutcome(
            status=classify_status_code(response.status_code),
            response_time_ms=_elapsed_ms(start),
            status_code=response.status_code,
        )


# Global instance
probe_service = ProbeService()
