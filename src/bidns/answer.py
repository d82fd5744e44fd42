from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import List, Optional, Tuple

from dnslib import QTYPE, DNSRecord

# Record types whose rdata is a host address.
ADDRESS_QTYPES = frozenset({QTYPE.A, QTYPE.AAAA})


@dataclass(frozen=True)
class AnswerRecord:
    """Single resource record from an upstream answer section.

    Inputs:
      - name: Owner name of the record.
      - rtype: Numeric RR type.
      - ttl: TTL in seconds, or None when the record carries none.
      - address: Textual address for A/AAAA records, otherwise None.

    Outputs:
      - Immutable record used by the routing decision.
    """

    name: str
    rtype: int
    ttl: Optional[int] = None
    address: Optional[str] = None

    @classmethod
    def from_rr(cls, rr) -> "AnswerRecord":
        """Brief: Build an AnswerRecord from a dnslib RR.

        Inputs:
          - rr: dnslib.RR instance.

        Outputs:
          - AnswerRecord with address populated only for A/AAAA rdata.
        """
        rtype = int(rr.rtype)
        address = None
        if rtype in ADDRESS_QTYPES:
            address = str(rr.rdata)
            try:
                address = str(ipaddress.ip_address(address))
            except ValueError:
                pass  # keep dnslib's text form
        return cls(name=str(rr.rname), rtype=rtype, ttl=int(rr.ttl), address=address)


@dataclass(frozen=True)
class Answer:
    """An upstream response plus the records the router inspects.

    Inputs:
      - wire: Wire-format response as received from the upstream.
      - rcode: Response code.
      - records: Answer-section records.

    Outputs:
      - Immutable answer safe to share between handler threads.

    Example use:
        >>> from dnslib import A, RR
        >>> q = DNSRecord.question("example.com", "A")
        >>> r = q.reply()
        >>> r.add_answer(RR("example.com", QTYPE.A, rdata=A("1.0.1.5"), ttl=300))
        >>> ans = Answer.from_wire(r.pack())
        >>> ans.addresses()
        ['1.0.1.5']
        >>> ans.min_positive_ttl(120)
        300
    """

    wire: bytes
    rcode: int = 0
    records: Tuple[AnswerRecord, ...] = ()

    @classmethod
    def from_message(
        cls, message: DNSRecord, wire: Optional[bytes] = None
    ) -> "Answer":
        """Build an Answer from a parsed dnslib message.

        When wire is given it is kept verbatim; otherwise the message is packed.
        """
        return cls(
            wire=bytes(wire) if wire is not None else message.pack(),
            rcode=int(message.header.rcode),
            records=tuple(AnswerRecord.from_rr(rr) for rr in message.rr),
        )

    @classmethod
    def from_wire(cls, wire: bytes) -> "Answer":
        """Brief: Parse a wire-format response.

        Inputs:
          - wire: Response bytes.

        Outputs:
          - Answer. The original bytes are kept verbatim.

        Raises:
          - dnslib.DNSError (or other parse errors) on malformed input.
        """
        return cls.from_message(DNSRecord.parse(wire), wire)

    def message(self) -> DNSRecord:
        return DNSRecord.parse(self.wire)

    def addresses(self) -> List[str]:
        """Brief: Addresses from address-bearing records, deduplicated in order.

        Inputs:
          - None.

        Outputs:
          - list[str]; unspecified addresses (0.0.0.0, ::) are skipped.
        """
        seen: List[str] = []
        for rec in self.records:
            if rec.address is None:
                continue
            try:
                if ipaddress.ip_address(rec.address).is_unspecified:
                    continue
            except ValueError:
                # Malformed rdata is left for the route matcher to reject.
                pass
            if rec.address not in seen:
                seen.append(rec.address)
        return seen

    def min_positive_ttl(self, default: int) -> int:
        """Brief: Smallest positive TTL among records, or default when none.

        Inputs:
          - default: Fallback TTL in seconds.

        Outputs:
          - int seconds.
        """
        ttls = [rec.ttl for rec in self.records if rec.ttl is not None and rec.ttl > 0]
        return min(ttls) if ttls else int(default)
