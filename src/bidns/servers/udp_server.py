import logging
import socket
import socketserver
from typing import Callable

logger = logging.getLogger("bidns.server.udp")

Resolver = Callable[[bytes, str], bytes]


class _UDPHandler(socketserver.BaseRequestHandler):
    """
    Brief: UDP handler that delegates to a resolver callable.

    Inputs:
    - request: (data, socket) tuple provided by socketserver
    - client_address: peer address

    Outputs:
    - None

    Example:
        See UDPListener.
    """

    resolver: Resolver = staticmethod(lambda b, ip: b)

    def handle(self) -> None:
        data, sock = self.request
        peer_ip = (
            self.client_address[0]
            if isinstance(self.client_address, tuple)
            else "0.0.0.0"
        )
        try:
            resp = self.resolver(data, peer_ip)
        except Exception:
            logger.exception("Unhandled error resolving UDP query from %s", peer_ip)
            return
        # An empty response means the query is dropped without a reply.
        if resp:
            sock.sendto(resp, self.client_address)


class _ThreadingUDPServer(socketserver.ThreadingUDPServer):
    daemon_threads = True
    allow_reuse_address = True


class _ThreadingUDPServer6(_ThreadingUDPServer):
    address_family = socket.AF_INET6


class UDPListener:
    """A threaded DNS-over-UDP listener.

    Inputs:
      - host: Listen address (IPv4 or IPv6).
      - port: Listen port (0 picks an ephemeral port).
      - resolver: Callable mapping (query_bytes, client_ip) -> response_bytes.

    Outputs:
      - UDPListener bound on construction; serve_forever() blocks until stop().

    Example use:
        >>> listener = UDPListener("127.0.0.1", 0, resolver)
        >>> threading.Thread(target=listener.serve_forever, daemon=True).start()
        >>> listener.stop()
    """

    def __init__(self, host: str, port: int, resolver: Resolver) -> None:
        handler_cls = type(
            "BoundUDPHandler", (_UDPHandler,), {"resolver": staticmethod(resolver)}
        )
        server_cls = _ThreadingUDPServer6 if ":" in host else _ThreadingUDPServer
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
        logger.info("Listening for datagrams on %s:%d", host, self.address[1])

    @property
    def address(self):
        return self.server.server_address

    def serve_forever(self) -> None:
        """Run the UDP server loop until stop() is called."""
        self._serving = True
        try:
            self.server.serve_forever()
        finally:
            self._serving = False

    def stop(self) -> None:
        """
        Request graceful shutdown and close the underlying UDP socket.

        Inputs:
          - None
        Outputs:
          - None; best-effort shutdown suitable for use from signal handlers.
        """
        try:
            # shutdown() blocks until serve_forever() returns, so only call it
            # while the loop is running.
            if self._serving:
                self.server.shutdown()
        finally:
            self.server.server_close()
