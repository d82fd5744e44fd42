"""
Brief: Shared builders and fakes for router/server tests.

Inputs:
  - None

Outputs:
  - make_answer, FakeResolver, FakeClock
"""

from dnslib import AAAA, CNAME, QTYPE, RR, A, DNSRecord

from bidns.answer import Answer
from bidns.upstream import UpstreamError

_RDATA = {"A": A, "AAAA": AAAA, "CNAME": CNAME}


def make_answer(qname, qtype, records=(), rcode=0):
    """
    Brief: Build an Answer from (rtype, value, ttl) tuples.

    Inputs:
      - qname: query name
      - qtype: numeric query type
      - records: iterable of (rtype, value, ttl); rtype is 'A', 'AAAA' or 'CNAME'
      - rcode: response code

    Outputs:
      - Answer
    """
    q = DNSRecord.question(qname, QTYPE[qtype])
    r = q.reply()
    r.header.rcode = rcode
    for rtype, value, ttl in records:
        r.add_answer(RR(qname, getattr(QTYPE, rtype), rdata=_RDATA[rtype](value), ttl=ttl))
    return Answer.from_wire(r.pack())


class FakeResolver:
    """
    Brief: In-process resolver returning a fixed Answer or raising UpstreamError.

    Inputs:
      - answer: Answer to return, or None to fail every call

    Outputs:
      - resolver object recording calls in .calls
    """

    def __init__(self, answer=None):
        self.answer = answer
        self.calls = []

    def resolve(self, qname, qtype):
        self.calls.append((qname, qtype))
        if self.answer is None:
            raise UpstreamError("fake upstream down")
        return self.answer


class FakeClock:
    def __init__(self, start=1_000_000.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds
