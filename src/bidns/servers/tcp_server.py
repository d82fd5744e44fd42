import logging
import socket
import socketserver
from typing import Callable

from ..transports.tcp import recv_exact

logger = logging.getLogger("bidns.server.tcp")

Resolver = Callable[[bytes, str], bytes]

# Idle connections are closed after this many seconds without a new query.
IDLE_TIMEOUT_S = 15.0


class _TCPHandler(socketserver.BaseRequestHandler):
    """
    Brief: DNS-over-TCP handler (RFC 7766 length framing).

    Inputs:
    - request: connected socket provided by socketserver
    - client_address: peer address

    Outputs:
    - None

    Serves any number of queries on one connection until EOF, a framing
    error, an idle timeout, or a dropped (empty) response.
    """

    resolver: Resolver = staticmethod(lambda b, ip: b)

    def handle(self) -> None:
        sock: socket.socket = self.request
        peer_ip = self.client_address[0]
        sock.settimeout(IDLE_TIMEOUT_S)
        while True:
            try:
                hdr = recv_exact(sock, 2)
                if len(hdr) != 2:
                    return
                length = int.from_bytes(hdr, "big")
                query = recv_exact(sock, length)
                if len(query) != length:
                    logger.debug("Short TCP body from %s; closing", peer_ip)
                    return
            except OSError as e:
                logger.debug("TCP connection from %s closed: %s", peer_ip, e)
                return

            try:
                resp = self.resolver(query, peer_ip)
            except Exception:
                logger.exception("Unhandled error resolving TCP query from %s", peer_ip)
                return
            if not resp:
                return
            try:
                sock.sendall(len(resp).to_bytes(2, "big") + resp)
            except OSError as e:
                logger.debug("TCP write to %s failed: %s", peer_ip, e)
                return


class _ThreadingTCPServer(socketserver.ThreadingTCPServer):
    daemon_threads = True
    allow_reuse_address = True


class _ThreadingTCPServer6(_ThreadingTCPServer):
    address_family = socket.AF_INET6


class TCPListener:
    """A threaded DNS-over-TCP listener.

    Inputs:
      - host: Listen address (IPv4 or IPv6).
      - port: Listen port (0 picks an ephemeral port).
      - resolver: Callable mapping (query_bytes, client_ip) -> response_bytes.

    Outputs:
      - TCPListener bound on construction; serve_forever() blocks until stop().
    """

    def __init__(self, host: str, port: int, resolver: Resolver) -> None:
        handler_cls = type(
            "BoundTCPHandler", (_TCPHandler,), {"resolver": staticmethod(resolver)}
        )
        server_cls = _ThreadingTCPServer6 if ":" in host else _ThreadingTCPServer
        try:
            self.server = server_cls((host, int(port)), handler_cls)
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or run with elevated privileges. Original error: %s",
                host,
                port,
                e,
            )
            raise
        self._serving = False
        logger.info("Listening for connections on %s:%d", host, self.address[1])

    @property
    def address(self):
        return self.server.server_address

    def serve_forever(self) -> None:
        """Run the TCP accept loop until stop() is called."""
        self._serving = True
        try:
            self.server.serve_forever()
        finally:
            self._serving = False

    def stop(self) -> None:
        """Request graceful shutdown and close the listening socket."""
        try:
            # shutdown() blocks until serve_forever() returns, so only call it
            # while the loop is running.
            if self._serving:
                self.server.shutdown()
        finally:
            self.server.server_close()
