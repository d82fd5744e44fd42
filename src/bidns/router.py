from __future__ import annotations

import enum
import logging
import threading
from typing import Dict, NamedTuple, Optional, Protocol

from dnslib import QTYPE

from .answer import Answer
from .cache import ResolutionCache
from .routes import RouteMatcher
from .upstream import UpstreamError

logger = logging.getLogger(__name__)

DEFAULT_TTL = 120


class Outcome(str, enum.Enum):
    """Terminal state of a single resolution."""

    CACHE_HIT = "cache_hit"
    LOCAL = "local"
    REMOTE = "remote"
    FALLBACK_LOCAL = "fallback_local"
    FAILED = "failed"


class Resolver(Protocol):
    def resolve(self, qname: str, qtype: int) -> Answer: ...


class Resolution(NamedTuple):
    """Result of ResolutionRouter.resolve().

    Inputs:
      - None (constructed by the router).
    Outputs:
      - answer: Chosen Answer, or None when outcome is FAILED.
      - ttl: Seconds the answer is (or would be) cached for; remaining seconds
        for cache hits, 0 when FAILED.
      - outcome: Outcome member.
    """

    answer: Optional[Answer]
    ttl: int
    outcome: Outcome


class ResolutionRouter:
    """Chooses between a local and a remote upstream per query.

    Inputs:
      - matcher: RouteMatcher for the domestic route table.
      - cache: ResolutionCache shared by all handler threads.
      - local: Fast resolver whose answers are trusted when domestic.
      - remote: Trusted resolver used for everything else.
      - default_ttl: TTL used when no answer record has a positive TTL.

    Outputs:
      - ResolutionRouter; resolve() is safe to call from many threads.

    Notes:
      - The remote resolver is only asked after the local answer has been
        rejected or the local resolver failed; both are never queried in
        parallel.
      - Answers returned as FALLBACK_LOCAL are never cached.

    Example use:
        >>> router = ResolutionRouter(matcher, ResolutionCache(), local, remote)
        >>> res = router.resolve("example.com", QTYPE.A)
        >>> res.outcome
        <Outcome.LOCAL: 'local'>
    """

    def __init__(
        self,
        matcher: RouteMatcher,
        cache: ResolutionCache,
        local: Resolver,
        remote: Resolver,
        default_ttl: int = DEFAULT_TTL,
    ) -> None:
        self.matcher = matcher
        self.cache = cache
        self.local = local
        self.remote = remote
        self.default_ttl = int(default_ttl)
        self._counts: Dict[Outcome, int] = {o: 0 for o in Outcome}
        self._counts_lock = threading.Lock()

    def _finish(self, resolution: Resolution) -> Resolution:
        with self._counts_lock:
            self._counts[resolution.outcome] += 1
        return resolution

    def stats(self) -> Dict[str, int]:
        """Return a copy of the per-outcome counters keyed by outcome value."""
        with self._counts_lock:
            return {o.value: n for o, n in self._counts.items()}

    def accepts_local(self, qtype: int, addresses) -> bool:
        """Brief: Decide whether a local answer can be trusted.

        Inputs:
          - qtype: Numeric query type.
          - addresses: Deduplicated addresses extracted from the local answer.

        Outputs:
          - bool: True for AAAA queries, for answers without addresses, and
            for answers whose addresses are all domestic.
        """
        # The route table is IPv4-only, so AAAA answers cannot be judged.
        if qtype == QTYPE.AAAA:
            return True
        if not addresses:
            return True
        return all(self.matcher.contains(ip) for ip in addresses)

    def resolve(self, qname: str, qtype: int) -> Resolution:
        """Brief: Resolve one question through cache, local and remote.

        Inputs:
          - qname: Query name.
          - qtype: Numeric record type.

        Outputs:
          - Resolution(answer, ttl, outcome).

        Raises:
          - ValueError when an upstream answer carries an address the route
            matcher cannot parse.
        """
        qtype = int(qtype)
        qtype_name = QTYPE.get(qtype, str(qtype))

        entry = self.cache.get(qname, qtype)
        if entry is not None:
            logger.info("%s %s -> FROM CACHE", qname, qtype_name)
            return self._finish(
                Resolution(
                    entry.answer,
                    entry.remaining(self.cache.now()),
                    Outcome.CACHE_HIT,
                )
            )

        local_res = self._ask(self.local, "local", qname, qtype, qtype_name)

        if local_res is not None:
            addresses = local_res.addresses()
            ttl = local_res.min_positive_ttl(self.default_ttl)
            logger.info(
                "%s %s -> %s (TTL = %d)", qname, qtype_name, ", ".join(addresses), ttl
            )
            if self.accepts_local(qtype, addresses):
                logger.info("%s %s -> LOCAL", qname, qtype_name)
                self.cache.put(qname, qtype, local_res, ttl)
                return self._finish(Resolution(local_res, ttl, Outcome.LOCAL))

        remote_res = self._ask(self.remote, "remote", qname, qtype, qtype_name)

        if remote_res is not None:
            ttl = remote_res.min_positive_ttl(self.default_ttl)
            logger.info("%s %s -> REMOTE (TTL = %d)", qname, qtype_name, ttl)
            self.cache.put(qname, qtype, remote_res, ttl)
            return self._finish(Resolution(remote_res, ttl, Outcome.REMOTE))

        if local_res is not None:
            logger.info("%s %s -> FALLBACK TO LOCAL", qname, qtype_name)
            return self._finish(
                Resolution(
                    local_res,
                    local_res.min_positive_ttl(self.default_ttl),
                    Outcome.FALLBACK_LOCAL,
                )
            )

        logger.warning("%s %s -> FAILED (no upstream answered)", qname, qtype_name)
        return self._finish(Resolution(None, 0, Outcome.FAILED))

    def _ask(
        self, resolver: Resolver, label: str, qname: str, qtype: int, qtype_name: str
    ) -> Optional[Answer]:
        try:
            return resolver.resolve(qname, qtype)
        except UpstreamError as e:
            logger.warning(
                "%s %s -> %s resolver failed: %s", qname, qtype_name, label, e
            )
            return None
