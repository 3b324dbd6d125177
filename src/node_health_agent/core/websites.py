"""Website reachability, latency and certificate expiry checks.

Each check yields its own alert type (``<name>``, ``<name>-response``,
``<name>-ssl``) so the collector reconciles them independently.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import ssl
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime

import httpx
from cryptography import x509

from .models import AlertRecord, SslThresholds, WebsiteDef

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 3
DEFAULT_TIMEOUT = 5.0
USER_AGENT = "node-health-agent/0.1"

CertFetcher = Callable[[str, int, float], Awaitable[datetime]]


def _fetch_cert_expiry_blocking(host: str, port: int, timeout: float) -> datetime:
    # Unverified: an expired or self-signed certificate must still yield its expiry.
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    with socket.create_connection((host, port), timeout=timeout) as sock:
        with context.wrap_socket(sock, server_hostname=host) as tls:
            der = tls.getpeercert(binary_form=True)
    if not der:
        raise ssl.SSLError("server did not present a certificate")
    return x509.load_der_x509_certificate(der).not_valid_after_utc


async def fetch_cert_expiry(host: str, port: int, timeout: float) -> datetime:
    """Return the peer certificate's notAfter as an aware UTC datetime."""
    return await asyncio.to_thread(_fetch_cert_expiry_blocking, host, port, timeout)


def days_until(expiry: datetime, now: datetime) -> int:
    return (expiry - now).days


def classify_expiry(days_left: int, thresholds: SslThresholds) -> tuple[str, int] | None:
    """Return the first (tier, threshold) with ``days_left < threshold``, most severe first."""
    for tier, limit in thresholds.tiers():
        if days_left < limit:
            return tier, limit
    return None


class WebsiteHealthChecker:
    def __init__(
        self,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
        cert_fetcher: CertFetcher = fetch_cert_expiry,
        clock: Callable[[], float] = time.perf_counter,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.timeout = timeout
        self._transport = transport
        self._cert_fetcher = cert_fetcher
        self._clock = clock
        self._now = now

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        )

    async def check_reachability(self, client: httpx.AsyncClient, site: WebsiteDef) -> AlertRecord:
        try:
            response = await client.head(site.url)
        except httpx.HTTPError as exc:
            logger.warning("Website %s unreachable: %s", site.name, exc)
            return AlertRecord(
                type=site.name,
                description=f"{site.url} is unreachable: {exc}",
                solved=False,
            )

        reachable = 200 <= response.status_code < 400
        if reachable:
            description = f"{site.url} is reachable (HTTP {response.status_code})"
        else:
            description = f"{site.url} returned HTTP {response.status_code}"
        return AlertRecord(type=site.name, description=description, solved=reachable)

    async def check_response_time(
        self, client: httpx.AsyncClient, site: WebsiteDef, threshold_ms: int
    ) -> AlertRecord:
        key = f"{site.name}-response"
        start = self._clock()
        try:
            await client.head(site.url)
        except httpx.HTTPError as exc:
            return AlertRecord(
                type=key,
                description=f"{site.url} response time not measured: {exc}",
                solved=False,
            )
        elapsed_ms = round((self._clock() - start) * 1000)

        slow = elapsed_ms > threshold_ms
        if slow:
            logger.warning("Website %s slow: %d ms > %d ms", site.name, elapsed_ms, threshold_ms)
        return AlertRecord(
            type=key,
            description=f"{site.url} responded in {elapsed_ms} ms (threshold {threshold_ms} ms)",
            solved=not slow,
        )

    async def check_certificate(self, site: WebsiteDef, thresholds: SslThresholds) -> AlertRecord:
        key = f"{site.name}-ssl"
        try:
            expiry = await self._cert_fetcher(site.host, site.effective_port, self.timeout)
        except (OSError, ssl.SSLError, ValueError) as exc:
            logger.warning("TLS check failed for %s: %s", site.name, exc)
            return AlertRecord(
                type=key,
                description=f"TLS check for {site.host}:{site.effective_port} failed: {exc}",
                solved=False,
            )

        days_left = days_until(expiry, self._now())
        tier = classify_expiry(days_left, thresholds)
        expires = expiry.date().isoformat()
        if tier is None:
            return AlertRecord(
                type=key,
                description=(
                    f"SSL certificate for {site.host} expires {expires} ({days_left} days left)"
                ),
                solved=True,
            )

        name, limit = tier
        return AlertRecord(
            type=key,
            description=(
                f"[{name}] SSL certificate for {site.host} expires {expires} "
                f"({days_left} days left, {name} threshold {limit} days)"
            ),
            solved=False,
        )

    async def check_one(
        self, client: httpx.AsyncClient, site: WebsiteDef, global_ssl: SslThresholds
    ) -> list[AlertRecord]:
        records = [await self.check_reachability(client, site)]
        if site.response_threshold_ms is not None:
            records.append(await self.check_response_time(client, site, site.response_threshold_ms))
        if site.protocol == "https":
            records.append(await self.check_certificate(site, site.ssl_thresholds or global_ssl))
        return records

    async def check(
        self,
        defs: Sequence[WebsiteDef],
        global_ssl_thresholds: SslThresholds | None = None,
    ) -> list[AlertRecord]:
        global_ssl = global_ssl_thresholds or SslThresholds()
        records: list[AlertRecord] = []
        async with self._client() as client:
            for site in defs:
                records.extend(await self.check_one(client, site, global_ssl))
        return records
