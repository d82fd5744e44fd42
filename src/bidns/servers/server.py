import functools
import logging
from typing import Callable, Optional

from dnslib import EDNS0, OPCODE, QTYPE, RCODE, DNSRecord

from ..answer import Answer
from ..router import Outcome, ResolutionRouter

logger = logging.getLogger("bidns.server")

# Classic DNS UDP payload limit for clients that do not advertise EDNS(0).
DEFAULT_UDP_PAYLOAD = 512


def _client_udp_payload(req: DNSRecord) -> Optional[int]:
    """Return the client's advertised EDNS(0) payload size, or None without OPT."""
    for rr in getattr(req, "ar", None) or []:
        if rr.rtype == QTYPE.OPT:
            return max(DEFAULT_UDP_PAYLOAD, int(rr.rclass))
    return None


def _error_response(req: DNSRecord, rcode: int) -> bytes:
    r = req.reply(ra=1, aa=0)
    r.header.rcode = rcode
    return r.pack()


def build_response(req: DNSRecord, answer: Answer) -> DNSRecord:
    """
    Copy an upstream answer onto a reply for the client's request.

    Inputs:
      - req: Parsed client request (its ID and question are kept).
      - answer: Answer chosen by the router.

    Outputs:
      - DNSRecord reply with RA=1, the upstream rcode and its answer, authority
        and additional sections (upstream OPT records excluded).

    Example:
      >>> reply = build_response(req, resolution.answer)
      >>> reply.header.id == req.header.id
      True
    """
    upstream = answer.message()
    reply = req.reply(ra=1, aa=0)
    reply.header.rcode = upstream.header.rcode
    for rr in upstream.rr:
        reply.add_answer(rr)
    for rr in upstream.auth:
        reply.add_auth(rr)
    for rr in upstream.ar:
        if rr.rtype != QTYPE.OPT:
            reply.add_ar(rr)
    payload = _client_udp_payload(req)
    if payload is not None:
        reply.add_ar(EDNS0(udp_len=payload))
    return reply


def resolve_query_bytes(
    router: ResolutionRouter,
    data: bytes,
    client_ip: str,
    *,
    udp: bool = False,
) -> bytes:
    """Resolve a single DNS wire query and return wire response.

    Inputs:
      - router: ResolutionRouter making the local/remote decision.
      - data: Wire-format DNS query bytes.
      - client_ip: String client IP used in log messages.
      - udp: When True, responses larger than the client's UDP payload limit
        are replaced with a truncated (TC=1) reply.
    Outputs:
      - bytes: Wire-format DNS response, or b"" when the request could not be
        parsed and should be dropped.

    Router failures (FAILED outcome or an unexpected exception) are answered
    with SERVFAIL.

    Example:
      >>> resp = resolve_query_bytes(router, query_bytes, '127.0.0.1')
    """
    try:
        req = DNSRecord.parse(data)
    except Exception as e:
        logger.debug("Dropping unparseable query from %s: %s", client_ip, e)
        return b""

    if req.header.opcode != OPCODE.QUERY:
        return _error_response(req, RCODE.NOTIMP)
    if not req.questions:
        return _error_response(req, RCODE.FORMERR)

    qname = str(req.q.qname)
    qtype = int(req.q.qtype)
    logger.debug("Query from %s: %s %s", client_ip, qname, QTYPE.get(qtype, qtype))

    try:
        resolution = router.resolve(qname, qtype)
    except Exception:
        logger.exception("Resolution of %s %s failed", qname, qtype)
        return _error_response(req, RCODE.SERVFAIL)

    if resolution.outcome is Outcome.FAILED or resolution.answer is None:
        return _error_response(req, RCODE.SERVFAIL)

    reply = build_response(req, resolution.answer)
    wire = reply.pack()
    if udp:
        limit = _client_udp_payload(req) or DEFAULT_UDP_PAYLOAD
        if len(wire) > limit:
            logger.debug(
                "Truncating %d byte UDP response for %s (limit %d)",
                len(wire),
                qname,
                limit,
            )
            wire = reply.truncate().pack()
    return wire


def make_resolver(
    router: ResolutionRouter, *, udp: bool = False
) -> Callable[[bytes, str], bytes]:
    """Bind a router into a (query_bytes, client_ip) -> response_bytes callable."""
    return functools.partial(resolve_query_bytes, router, udp=udp)
