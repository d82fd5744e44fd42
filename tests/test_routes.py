"""
Brief: Tests for bidns.routes.RouteMatcher bucketed CIDR lookups.

Inputs:
  - None

Outputs:
  - None
"""

import logging

import pytest

from bidns.routes import RouteMatcher

TABLE = """\
# chnroutes, generated for tests
; header lines that do not start with a digit are ignored
1.0.1.0/24
1.0.8.0/21
27.8.0.0/13
58.14.0.0/15
203.0.113.128/25
198.51.100.7/32
"""


def test_single_route_example():
    """
    Brief: A /24 table matches inside addresses only.

    Inputs:
      - route table with 1.0.1.0/24

    Outputs:
      - None: Asserts 1.0.1.5 is domestic and 1.0.2.5 is not
    """
    m = RouteMatcher.from_text("1.0.1.0/24\n")
    assert m.contains("1.0.1.5") is True
    assert m.contains("1.0.2.5") is False


@pytest.mark.parametrize(
    "ip",
    ["1.0.1.0", "1.0.1.255", "1.0.15.1", "27.15.255.255", "58.15.1.2", "198.51.100.7"],
)
def test_addresses_inside_routes(ip):
    m = RouteMatcher.from_text(TABLE)
    assert m.contains(ip)


@pytest.mark.parametrize(
    "ip", ["1.0.0.255", "1.0.16.0", "27.16.0.0", "8.8.8.8", "198.51.100.8"]
)
def test_addresses_outside_routes(ip):
    m = RouteMatcher.from_text(TABLE)
    assert not m.contains(ip)


def test_comments_and_blank_lines_ignored():
    """
    Brief: Non-digit and blank lines do not produce routes.

    Inputs:
      - TABLE with two header lines

    Outputs:
      - None: Asserts route count equals the CIDR lines
    """
    m = RouteMatcher.from_text(TABLE + "\n\n")
    assert len(m) == 6


def test_malformed_lines_skipped_with_summary_warning(caplog):
    """
    Brief: Digit-leading garbage is skipped and reported once.

    Inputs:
      - table with two malformed lines

    Outputs:
      - None: Asserts valid routes kept and a single warning logged
    """
    caplog.set_level(logging.WARNING, logger="bidns.routes")
    m = RouteMatcher.from_text("1.0.1.0/24\n300.1.1.0/24\n1.2.3.4/40\n")
    assert len(m) == 1
    assert m.contains("1.0.1.9")
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "2 malformed" in warnings[0].getMessage()


def test_indented_lines_are_ignored():
    """
    Brief: Only lines whose first character is a digit are routes.

    Inputs:
      - table with an indented CIDR and a tab-indented CIDR

    Outputs:
      - None: Asserts neither indented line is loaded
    """
    m = RouteMatcher.from_text(" 1.0.1.0/24\n\t1.0.8.0/21\n58.14.0.0/15\n")
    assert len(m) == 1
    assert not m.contains("1.0.1.5")
    assert m.contains("58.14.0.1")


def test_line_without_prefix_length_is_malformed(caplog):
    """
    Brief: A bare address is counted as malformed rather than loaded as a /32.

    Inputs:
      - table with '1.0.1.0' and one valid CIDR

    Outputs:
      - None: Asserts the bare address is skipped and reported
    """
    caplog.set_level(logging.WARNING, logger="bidns.routes")
    m = RouteMatcher.from_text("1.0.1.0\n58.14.0.0/15\n")
    assert len(m) == 1
    assert not m.contains("1.0.1.0")
    assert "1 malformed" in caplog.text


def test_long_prefix_used_when_no_bucket_for_first_byte():
    """
    Brief: Overflow (>/24) routes match when no bucket exists for the first byte.

    Inputs:
      - table with only 203.0.113.128/25

    Outputs:
      - None: Asserts overflow membership
    """
    m = RouteMatcher.from_text("203.0.113.128/25\n")
    assert m.contains("203.0.113.200")
    assert not m.contains("203.0.113.1")


def test_bucket_hit_does_not_fall_through_to_overflow():
    """
    Brief: A first-byte bucket miss does not consult the overflow list by default.

    Inputs:
      - 203.0.0.0/24 bucket plus an overflow /25 sharing first byte 203

    Outputs:
      - None: Asserts overflow network is not matched
    """
    m = RouteMatcher.from_text("203.0.0.0/24\n203.0.113.128/25\n")
    assert m.contains("203.0.0.10")
    assert not m.contains("203.0.113.200")


def test_always_check_overflow_flag():
    m = RouteMatcher.from_text(
        "203.0.0.0/24\n203.0.113.128/25\n", always_check_overflow=True
    )
    assert m.contains("203.0.113.200")
    assert not m.contains("203.0.113.1")


def test_non_canonical_network_is_accepted():
    """
    Brief: Host bits set in a route are masked rather than rejected.

    Inputs:
      - '1.0.1.7/24'

    Outputs:
      - None: Asserts the /24 matches
    """
    m = RouteMatcher.from_text("1.0.1.7/24\n")
    assert m.contains("1.0.1.200")


def test_ipv6_is_never_domestic():
    m = RouteMatcher.from_text(TABLE)
    assert m.contains("2001:db8::1") is False


def test_invalid_address_raises():
    m = RouteMatcher.from_text(TABLE)
    with pytest.raises(ValueError):
        m.contains("not-an-ip")


def test_in_operator():
    m = RouteMatcher.from_text(TABLE)
    assert "1.0.1.1" in m
    assert "8.8.8.8" not in m


def test_from_file(tmp_path):
    """
    Brief: from_file loads a table from disk.

    Inputs:
      - tmp_path: pytest tmp dir

    Outputs:
      - None: Asserts loaded matcher answers correctly
    """
    path = tmp_path / "chnroutes.txt"
    path.write_text(TABLE)
    m = RouteMatcher.from_file(str(path))
    assert len(m) == 6
    assert m.contains("58.14.0.1")


def test_from_file_missing_raises(tmp_path):
    with pytest.raises(OSError):
        RouteMatcher.from_file(str(tmp_path / "missing.txt"))
