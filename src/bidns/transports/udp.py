import socket

# Large enough for EDNS(0) sized replies from well-behaved upstreams.
MAX_UDP_RESPONSE = 4096


class UDPError(Exception):
    """
    Brief: DNS-over-UDP transport error.

    Inputs:
    - message: description

    Outputs:
    - Exception instance
    """

    pass


def udp_query(
    host: str,
    port: int,
    query: bytes,
    *,
    timeout_ms: int = 2000,
) -> bytes:
    """
    Brief: Perform a single UDP DNS query.

    Inputs:
    - host: upstream resolver host/IP
    - port: upstream UDP port
    - query: wire-format DNS query bytes
    - timeout_ms: socket timeout in milliseconds

    Outputs:
    - bytes: wire-format DNS response

    Replies whose transaction ID does not match the query are discarded until
    the timeout expires.

    Example:
        >>> try:
        ...     udp_query('127.0.0.1', 53, b'\x00\x01')
        ... except UDPError:
        ...     pass
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    try:
        s = socket.socket(family, socket.SOCK_DGRAM)
        try:
            s.settimeout(timeout_ms / 1000.0)
            s.sendto(query, (host, int(port)))
            while True:
                data, _ = s.recvfrom(MAX_UDP_RESPONSE)
                if len(query) < 2 or data[:2] == query[:2]:
                    return data
        finally:
            s.close()
    except OSError as e:
        raise UDPError(f"UDP error: {e}") from e
