from __future__ import annotations

import ipaddress
import logging
from typing import Dict, Iterable, List, Tuple

""" Domestic route table lookups bucketed by first address byte. """

logger = logging.getLogger(__name__)

# Prefixes longer than this are too specific for a first-byte bucket and are
# kept in the overflow list instead.
BUCKET_MAX_PREFIXLEN = 24


class RouteMatcher:
    """
    Answers "is this IPv4 address inside the domestic route table?".

    Inputs:
        buckets: Mapping of first address byte -> networks with prefixlen <= 24.
        overflow: Networks with prefixlen > 24.
        always_check_overflow: When True, a bucket hit that does not contain
            the address also consults the overflow list.
    Outputs:
        RouteMatcher instance (read-only after construction).

    Notes:
        When a bucket exists for an address's first byte, only that bucket is
        searched unless always_check_overflow is set. The overflow list is
        consulted only for first bytes with no bucket at all.

    Example use:
        >>> m = RouteMatcher.from_text("1.0.1.0/24\\n")
        >>> m.contains("1.0.1.5")
        True
        >>> m.contains("1.0.2.5")
        False
    """

    def __init__(
        self,
        buckets: Dict[int, Tuple[ipaddress.IPv4Network, ...]],
        overflow: Tuple[ipaddress.IPv4Network, ...] = (),
        *,
        always_check_overflow: bool = False,
    ) -> None:
        self._buckets = dict(buckets)
        self._overflow = tuple(overflow)
        self.always_check_overflow = bool(always_check_overflow)

    @classmethod
    def from_lines(
        cls, lines: Iterable[str], *, always_check_overflow: bool = False
    ) -> "RouteMatcher":
        """Brief: Build a matcher from route table lines.

        Inputs:
          - lines: Iterable of `<ipv4>/<prefixlen>` strings. Lines that do not
            start with a digit are treated as comments or headers; digit
            lines without a `/prefixlen` are counted as malformed.
          - always_check_overflow: See class docstring.

        Outputs:
          - RouteMatcher.
        """
        buckets: Dict[int, List[ipaddress.IPv4Network]] = {}
        overflow: List[ipaddress.IPv4Network] = []
        skipped = 0

        for raw in lines:
            if not raw[:1].isdigit():
                continue
            row = raw.rstrip()
            if "/" not in row:
                skipped += 1
                continue
            try:
                net = ipaddress.IPv4Network(row, strict=False)
            except ValueError:
                skipped += 1
                continue
            if net.prefixlen <= BUCKET_MAX_PREFIXLEN:
                first_byte = net.network_address.packed[0]
                buckets.setdefault(first_byte, []).append(net)
            else:
                overflow.append(net)

        if skipped:
            logger.warning("Skipped %d malformed route table lines", skipped)
        logger.debug(
            "Route table loaded: %d buckets, %d bucketed networks, %d overflow",
            len(buckets),
            sum(len(v) for v in buckets.values()),
            len(overflow),
        )
        return cls(
            {k: tuple(v) for k, v in buckets.items()},
            tuple(overflow),
            always_check_overflow=always_check_overflow,
        )

    @classmethod
    def from_text(
        cls, text: str, *, always_check_overflow: bool = False
    ) -> "RouteMatcher":
        """Build a matcher from the full text of a route table."""
        return cls.from_lines(
            text.splitlines(), always_check_overflow=always_check_overflow
        )

    @classmethod
    def from_file(
        cls, path: str, *, always_check_overflow: bool = False
    ) -> "RouteMatcher":
        """Brief: Build a matcher from a route table file.

        Inputs:
          - path: Filesystem path to the route table.
          - always_check_overflow: See class docstring.

        Outputs:
          - RouteMatcher.

        Raises:
          - OSError when the file cannot be read.
        """
        with open(path, "r", encoding="utf-8") as f:
            matcher = cls.from_lines(f, always_check_overflow=always_check_overflow)
        logger.info("Loaded %d routes from %s", len(matcher), path)
        return matcher

    def contains(self, ip: str) -> bool:
        """Brief: Return True if ip falls inside a domestic route.

        Inputs:
          - ip: Textual IP address.

        Outputs:
          - bool. IPv6 addresses are never domestic (the table is IPv4-only).

        Raises:
          - ValueError when ip is not a valid IP address.
        """
        addr = ipaddress.ip_address(ip)
        if addr.version != 4:
            return False

        candidates = self._buckets.get(addr.packed[0])
        if candidates is not None:
            if any(addr in net for net in candidates):
                return True
            if not self.always_check_overflow:
                return False
        return any(addr in net for net in self._overflow)

    __contains__ = contains

    def __len__(self) -> int:
        return sum(len(v) for v in self._buckets.values()) + len(self._overflow)
