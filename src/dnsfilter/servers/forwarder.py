"""Ordered-failover forwarding of DNS questions to upstream resolvers.

Brief:
  A ForwarderPool holds the configured upstream endpoints and resolves a query
  by trying them strictly in order, returning the answer section of the first
  endpoint that produces a usable reply. Every call starts again from the
  first endpoint; nothing about earlier failures is remembered.

Inputs:
  - ForwarderEndpoint list (built by dnsfilter.config.config_parser)
  - dnslib.DNSRecord queries

Outputs:
  - list of dnslib.RR answer records, or ForwardingError when every endpoint
    failed
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple

from dnslib import RR, DNSError, DNSRecord

from .transports.tcp import TCPError, tcp_query
from .transports.udp import UDPError, udp_query

PROTOCOLS = ("udp", "tcp")


@dataclass(frozen=True)
class ForwarderEndpoint:
    """
    Brief: One upstream resolver.

    Inputs:
      - host: IP address or hostname of the resolver.
      - port: Port number (1..65535).
      - protocol: "udp" or "tcp".

    Outputs:
      - ForwarderEndpoint instance.
    """

    host: str
    port: int = 53
    protocol: str = "udp"

    def __post_init__(self) -> None:
        if self.protocol not in PROTOCOLS:
            raise ValueError(
                f"{self.protocol} is an invalid protocol. Protocol for host: "
                f"{self.host} must be either udp or tcp"
            )
        if not 1 <= int(self.port) <= 65535:
            raise ValueError(f"port {self.port} for host {self.host} is out of range")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}/{self.protocol}"


class ForwardingError(Exception):
    """
    Brief: Raised when a query could not be forwarded.

    Inputs:
      - message: Description.
      - last_error: The exception raised by the last endpoint tried, if any.
      - endpoint: The endpoint that produced last_error, if any.

    Outputs:
      - Exception instance.
    """

    def __init__(
        self,
        message: str,
        *,
        last_error: Optional[BaseException] = None,
        endpoint: Optional[ForwarderEndpoint] = None,
    ) -> None:
        super().__init__(message)
        self.last_error = last_error
        self.endpoint = endpoint


Exchange = Callable[[ForwarderEndpoint, DNSRecord, int], DNSRecord]


def exchange_once(
    endpoint: ForwarderEndpoint, query: DNSRecord, timeout_ms: int
) -> DNSRecord:
    """
    Brief: Send one query to one endpoint and return the parsed reply.

    Inputs:
      - endpoint: Target upstream.
      - query: DNSRecord to send.
      - timeout_ms: Per-operation timeout in milliseconds.

    Outputs:
      - DNSRecord: Parsed reply.

    Raises:
      - UDPError / TCPError on network failure.
      - ForwardingError when the reply cannot be parsed or its id does not
        match the query id.
    """
    wire = query.pack()
    if endpoint.protocol == "tcp":
        response_wire = tcp_query(
            endpoint.host,
            endpoint.port,
            wire,
            connect_timeout_ms=timeout_ms,
            read_timeout_ms=timeout_ms,
        )
    else:
        response_wire = udp_query(
            endpoint.host, endpoint.port, wire, timeout_ms=timeout_ms
        )

    try:
        reply = DNSRecord.parse(response_wire)
    except DNSError as e:
        raise ForwardingError(
            f"unparseable reply from {endpoint}: {e}", endpoint=endpoint
        ) from e

    if reply.header.id != query.header.id:
        raise ForwardingError(
            f"reply id {reply.header.id} from {endpoint} does not match "
            f"query id {query.header.id}",
            endpoint=endpoint,
        )
    return reply


class ForwarderPool:
    """
    Brief: Ordered list of upstream endpoints with first-success failover.

    Inputs:
      - endpoints: Non-empty iterable of ForwarderEndpoint, in try order.
      - timeout_ms: Per-exchange timeout in milliseconds.
      - exchange: Callable (endpoint, query, timeout_ms) -> DNSRecord used to
        talk to one endpoint. Defaults to exchange_once().
      - logger: Logger receiving per-endpoint failure lines.

    Outputs:
      - ForwarderPool instance; read-only after construction.

    Example:
      >>> pool = ForwarderPool([ForwarderEndpoint("8.8.8.8")])
      >>> answers = pool.resolve(DNSRecord.question("example.com."))  # doctest: +SKIP
    """

    def __init__(
        self,
        endpoints: Iterable[ForwarderEndpoint],
        *,
        timeout_ms: int = 2000,
        exchange: Optional[Exchange] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._endpoints: Tuple[ForwarderEndpoint, ...] = tuple(endpoints)
        if not self._endpoints:
            raise ValueError("ForwarderPool requires at least one endpoint")
        self.timeout_ms = int(timeout_ms)
        self._exchange = exchange or exchange_once
        self._logger = logger or logging.getLogger("dnsfilter.forwarder")

    @property
    def endpoints(self) -> Tuple[ForwarderEndpoint, ...]:
        return self._endpoints

    def resolve(self, query: DNSRecord) -> List[RR]:
        """
        Brief: Resolve query against the endpoints in order.

        Inputs:
          - query: DNSRecord to forward.

        Outputs:
          - list[RR]: Answer section of the first endpoint that replied. An
            empty list is a successful resolution (e.g. NXDOMAIN) and ends the
            search.

        Raises:
          - ForwardingError: every endpoint failed; last_error holds the final
            endpoint's exception.
        """
        last_error: Optional[BaseException] = None
        last_endpoint: Optional[ForwarderEndpoint] = None

        for endpoint in self._endpoints:
            try:
                reply = self._exchange(endpoint, query, self.timeout_ms)
            except (UDPError, TCPError, ForwardingError, DNSError, OSError) as e:
                self._logger.warning(
                    "Error communicating with: %s - error: %s", endpoint, e
                )
                last_error = e
                last_endpoint = endpoint
                continue
            return list(reply.rr)

        raise ForwardingError(
            f"all {len(self._endpoints)} forwarders failed; last error from "
            f"{last_endpoint}: {last_error}",
            last_error=last_error,
            endpoint=last_endpoint,
        ) from last_error
