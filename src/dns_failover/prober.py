"""
Reachability probers.

A prober answers "can host:port be reached over TCP?" with up to N timed
connect attempts. `stream()` is an async generator that yields ProbeProgress
for every attempt and ends with exactly one ProbeResult. Failures of the
prober itself (backend down, malformed stream) raise ProbeError and are never
turned into a reachability verdict.

Two implementations:
- LocalProber: connects from this process with asyncio
- RemoteProber: asks a probe backend over HTTP and reads its NDJSON stream
"""

import asyncio
import json
import socket
from abc import abstractmethod
from typing import Any, AsyncIterator, Optional, Protocol, Union, runtime_checkable

import httpx

from .config import ProbeConfig
from .enums import ProbeMode
from .exceptions import ProbeError
from .models import ProbeProgress, ProbeResult


ProbeEvent = Union[ProbeProgress, ProbeResult]

TCP_CHECKS_PATH = "/api/v1/tcp_checks"
RESOLVE_IP_PATH = "/api/v1/resolve_ip"

# NDJSON response codes
CODE_RESULT = 0
CODE_PROGRESS = 1


@runtime_checkable
class Prober(Protocol):
    """Protocol defining the interface for reachability probers."""

    @abstractmethod
    def stream(self, target: str, port: int) -> AsyncIterator[ProbeEvent]:
        """
        Probe target:port, yielding progress and then the result.

        Raises:
            ProbeError: If the probe could not be performed
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        ...


async def probe(prober: Prober, target: str, port: int) -> ProbeResult:
    """Run a probe to completion, discarding progress."""
    result: Optional[ProbeResult] = None
    async for event in prober.stream(target, port):
        if isinstance(event, ProbeResult):
            result = event
    if result is None:
        raise ProbeError(
            code="no_result",
            message=f"Prober {prober.get_name()} produced no result for {target}:{port}",
            details={"target": target, "port": port},
        )
    return result


def format_address(ip: str, port: int) -> str:
    if ":" in ip:
        return f"[{ip}]:{port}"
    return f"{ip}:{port}"


def describe_connect_error(error: BaseException) -> str:
    """Short, classifiable description of a failed connect."""
    if isinstance(error, asyncio.TimeoutError):
        return "i/o timeout"
    if isinstance(error, ConnectionRefusedError):
        return "connection refused"
    text = str(error) or type(error).__name__
    return text.lower()


class LocalProber:
    """Probes from the local host with asyncio TCP connects."""

    def __init__(
        self,
        max_attempts: int = 5,
        attempt_timeout: float = 1.0,
        attempt_spacing: float = 1.0,
    ) -> None:
        """
        Args:
            max_attempts: Connect attempts before giving up
            attempt_timeout: Seconds allowed per connect
            attempt_spacing: Pause between failed attempts
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts
        self._attempt_timeout = attempt_timeout
        self._attempt_spacing = attempt_spacing

    def get_name(self) -> str:
        return "local"

    async def resolve(self, target: str, port: int) -> str:
        """
        Resolve target to its first IP address.

        Raises:
            OSError: If name resolution fails
        """
        loop = asyncio.get_running_loop()
        infos = await loop.getaddrinfo(target, port, type=socket.SOCK_STREAM)
        if not infos:
            raise OSError(f"no addresses for {target}")
        return infos[0][4][0]

    async def _connect(self, ip: str, port: int) -> None:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(ip, port),
            timeout=self._attempt_timeout,
        )
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            # Peer reset during close; the connect itself succeeded
            pass

    async def stream(self, target: str, port: int) -> AsyncIterator[ProbeEvent]:
        try:
            target_ip = await self.resolve(target, port)
        except OSError as e:
            # Not a connect failure: report unreachable without exhaustion
            yield ProbeResult(
                target=target,
                port=port,
                reachable=False,
                target_ip="",
                message=f"cannot resolve {target}: {e}",
                exhausted=False,
                attempts=0,
            )
            return

        address = format_address(target_ip, port)
        last_error = ""

        for attempt in range(1, self._max_attempts + 1):
            yield ProbeProgress(
                target=target,
                address=address,
                current=attempt,
                total=self._max_attempts,
            )
            try:
                await self._connect(target_ip, port)
            except (asyncio.TimeoutError, OSError) as e:
                last_error = describe_connect_error(e)
            else:
                yield ProbeResult(
                    target=target,
                    port=port,
                    reachable=True,
                    target_ip=target_ip,
                    attempts=attempt,
                )
                return

            if attempt < self._max_attempts and self._attempt_spacing > 0:
                await asyncio.sleep(self._attempt_spacing)

        yield ProbeResult(
            target=target,
            port=port,
            reachable=False,
            target_ip=target_ip,
            message=(
                f"check finished, could not connect to {address} after "
                f"{self._max_attempts} attempts: {last_error}"
            ),
            exhausted=True,
            attempts=self._max_attempts,
        )


class RemoteProber:
    """Probes through a remote backend speaking the NDJSON tcp_checks protocol."""

    def __init__(
        self,
        backend_url: str,
        key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            backend_url: Base URL of the probe backend
            key: Shared secret sent with every request
            timeout: Overall HTTP timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        self._backend_url = backend_url.rstrip("/")
        self._key = key
        self._timeout = timeout
        self._transport = transport

    def get_name(self) -> str:
        return "remote"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def stream(self, target: str, port: int) -> AsyncIterator[ProbeEvent]:
        url = f"{self._backend_url}{TCP_CHECKS_PATH}"
        body = {"target": target, "port": port, "key": self._key}

        try:
            async with self._client() as client:
                async with client.stream("POST", url, json=body) as response:
                    if response.status_code != 200:
                        detail = (await response.aread()).decode("utf-8", "replace")
                        raise ProbeError(
                            code="http_error",
                            message=f"Probe backend returned HTTP {response.status_code}",
                            details={
                                "status_code": response.status_code,
                                "body": detail[:200],
                                "target": target,
                            },
                        )

                    async for line in response.aiter_lines():
                        line = line.strip()
                        if not line:
                            continue
                        event = self._parse_line(line, target, port)
                        yield event
                        if isinstance(event, ProbeResult):
                            return
        except httpx.HTTPError as e:
            raise ProbeError(
                code="network_error",
                message=f"Probe backend request failed: {e}",
                details={"url": url, "target": target},
            ) from e

        raise ProbeError(
            code="incomplete_stream",
            message="Probe backend closed the stream without a result",
            details={"url": url, "target": target},
        )

    def _parse_line(self, line: str, target: str, port: int) -> ProbeEvent:
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as e:
            raise ProbeError(
                code="parse_error",
                message=f"Malformed line from probe backend: {e}",
                details={"line": line[:200], "target": target},
            ) from e

        if not isinstance(payload, dict):
            raise ProbeError(
                code="parse_error",
                message="Probe backend line is not an object",
                details={"line": line[:200], "target": target},
            )

        code = payload.get("code")
        data = payload.get("data") or {}

        try:
            return self._build_event(code, data, payload, target, port)
        except (ValueError, TypeError, AttributeError) as e:
            raise ProbeError(
                code="parse_error",
                message=f"Malformed data in probe backend line: {e}",
                details={"line": line[:200], "target": target},
            ) from e

    def _build_event(
        self, code: Any, data: Any, payload: dict, target: str, port: int
    ) -> ProbeEvent:
        if code == CODE_PROGRESS:
            return ProbeProgress(
                target=data.get("target", target),
                address=data.get("address", ""),
                current=int(data.get("current", 0)),
                total=int(data.get("total", 0)),
            )

        if code == CODE_RESULT:
            reachable = bool(data.get("result", False))
            target_ip = data.get("target_ip", "") or ""
            if "exhausted" in data:
                exhausted = bool(data["exhausted"])
            else:
                # A resolved target that still failed means every attempt was used
                exhausted = not reachable and bool(target_ip)
            return ProbeResult(
                target=data.get("target", target),
                port=port,
                reachable=reachable,
                target_ip=target_ip,
                message=data.get("message", "") or "",
                exhausted=exhausted and not reachable,
                attempts=int(data.get("attempts", 0)),
                backend_public_ip=data.get("backend_public_ip", "") or "",
            )

        raise ProbeError(
            code="backend_error",
            message=f"Probe backend error: {payload.get('message', 'unknown error')}",
            details={"code": code, "target": target},
        )

    async def resolve_ip(self, target: str, port: int = 80) -> str:
        """
        Ask the backend to resolve a hostname without probing it.

        Raises:
            ProbeError: If the backend fails or cannot resolve the name
        """
        url = f"{self._backend_url}{RESOLVE_IP_PATH}"
        try:
            async with self._client() as client:
                response = await client.post(
                    url, json={"target": target, "port": port, "key": self._key}
                )
        except httpx.HTTPError as e:
            raise ProbeError(
                code="network_error",
                message=f"Probe backend request failed: {e}",
                details={"url": url, "target": target},
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ProbeError(
                code="parse_error",
                message="Probe backend returned invalid JSON",
                details={"status_code": response.status_code},
            ) from e

        if response.status_code != 200 or payload.get("code") != CODE_RESULT:
            raise ProbeError(
                code="backend_error",
                message=f"Probe backend error: {payload.get('message', response.status_code)}",
                details={"status_code": response.status_code, "target": target},
            )
        return (payload.get("data") or {}).get("target_ip", "")


def create_prober(config: ProbeConfig) -> Prober:
    """Build the prober selected by the configuration."""
    if config.mode == ProbeMode.REMOTE.value:
        return RemoteProber(
            backend_url=config.backend_url,
            key=config.key,
            timeout=config.timeout_seconds,
        )
    return LocalProber(
        max_attempts=config.max_attempts,
        attempt_timeout=config.attempt_timeout_seconds,
        attempt_spacing=config.attempt_spacing_seconds,
    )
