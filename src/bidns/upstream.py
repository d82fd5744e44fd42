from __future__ import annotations

import logging

from dnslib import QTYPE, RCODE, DNSQuestion, DNSRecord

from .answer import Answer
from .transports.tcp import TCPError, tcp_query
from .transports.udp import UDPError, udp_query

logger = logging.getLogger(__name__)

TRANSPORTS = ("udp", "tcp")


class UpstreamError(Exception):
    """
    Brief: An upstream resolver produced no usable answer.

    Inputs:
    - message: description (transport error, timeout, SERVFAIL, bad reply)

    Outputs:
    - Exception instance
    """

    pass


class UpstreamResolver:
    """Forwards single questions to one upstream DNS server.

    Inputs:
      - host: Upstream host/IP.
      - port: Upstream port (default 53).
      - transport: 'udp' (default, with TCP retry on truncation) or 'tcp'.
      - timeout_ms: Per-attempt timeout in milliseconds.
      - name: Label used in log messages (e.g. 'local', 'remote').

    Outputs:
      - UpstreamResolver whose resolve() returns an Answer or raises
        UpstreamError.

    Example use:
        >>> local = UpstreamResolver("114.114.114.114", 53, name="local")
        >>> # local.resolve("example.com", QTYPE.A)
    """

    def __init__(
        self,
        host: str,
        port: int = 53,
        transport: str = "udp",
        timeout_ms: int = 2000,
        name: str = "",
    ) -> None:
        transport = str(transport).lower()
        if transport not in TRANSPORTS:
            raise ValueError(f"unsupported upstream transport {transport!r}")
        self.host = str(host)
        self.port = int(port)
        self.transport = transport
        self.timeout_ms = int(timeout_ms)
        self.name = name or f"{self.host}:{self.port}"

    def __repr__(self) -> str:
        return (
            f"UpstreamResolver({self.name}: {self.transport}://{self.host}:{self.port})"
        )

    def _send(self, wire: bytes, transport: str) -> bytes:
        if transport == "tcp":
            return tcp_query(
                self.host,
                self.port,
                wire,
                connect_timeout_ms=self.timeout_ms,
                read_timeout_ms=self.timeout_ms,
            )
        return udp_query(self.host, self.port, wire, timeout_ms=self.timeout_ms)

    def resolve(self, qname: str, qtype: int) -> Answer:
        """Brief: Ask the upstream one recursion-desired question.

        Inputs:
          - qname: Query name.
          - qtype: Numeric record type.

        Outputs:
          - Answer parsed from the upstream reply.

        Raises:
          - UpstreamError on transport failure, timeout, unparseable reply,
            or SERVFAIL.
        """
        query = DNSRecord(q=DNSQuestion(qname, int(qtype)))
        wire = query.pack()
        qtype_name = QTYPE.get(qtype, str(qtype))

        logger.debug(
            "Forwarding %s %s via %s to %s:%d",
            qname,
            qtype_name,
            self.transport,
            self.host,
            self.port,
        )
        try:
            response_wire = self._send(wire, self.transport)
            response = DNSRecord.parse(response_wire)
            # If UDP and TC=1, fall back to TCP for the full response
            if self.transport == "udp" and response.header.tc:
                logger.debug(
                    "Truncated UDP response from %s for %s; retrying over TCP",
                    self.name,
                    qname,
                )
                response_wire = self._send(wire, "tcp")
                response = DNSRecord.parse(response_wire)
        except (UDPError, TCPError) as e:
            raise UpstreamError(f"{self.name}: {e}") from e
        except Exception as e:
            raise UpstreamError(f"{self.name}: unparseable reply: {e}") from e

        if response.header.id != query.header.id:
            raise UpstreamError(f"{self.name}: transaction id mismatch")
        if response.header.rcode == RCODE.SERVFAIL:
            raise UpstreamError(f"{self.name}: SERVFAIL for {qname} {qtype_name}")
        return Answer.from_message(response, response_wire)
