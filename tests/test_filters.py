"""
Brief: Tests for dnsfilter.filters rule matching and first-match evaluation.

Inputs:
  - None

Outputs:
  - None
"""

import pytest
from dnslib import QTYPE

from dnsfilter.filters import ALL_QTYPES, FilterRule, FilterSet


@pytest.mark.parametrize(
    "name",
    ["ads.example.com.", "sub.ads.example.com.", "xads.example.com.org."],
)
def test_contains_rule_matches_names_containing_host(name):
    """
    Brief: Non-exact rules block any name that contains the host.

    Inputs:
      - name: queried names that embed the rule host

    Outputs:
      - None: Asserts matches() is True
    """
    rule = FilterRule("ads.example.com", QTYPE.A, exact=False)
    assert rule.matches(name, QTYPE.A) is True


def test_contains_rule_ignores_names_without_host():
    rule = FilterRule("ads.example.com", QTYPE.A, exact=False)
    assert rule.matches("example.com.", QTYPE.A) is False
    assert rule.matches("ads.example.net.", QTYPE.A) is False


def test_contains_rule_requires_matching_type():
    rule = FilterRule("ads.example.com", QTYPE.A, exact=False)
    assert rule.matches("ads.example.com.", QTYPE.AAAA) is False
    assert rule.matches("ads.example.com.", QTYPE.MX) is False


def test_exact_rule_matches_only_terminated_host():
    """
    Brief: Exact rules compare against host plus the trailing dot.

    Inputs:
      - None

    Outputs:
      - None: Asserts supersets, subsets and unterminated names do not match
    """
    rule = FilterRule("tracker.example.com", QTYPE.A, exact=True)
    assert rule.matches("tracker.example.com.", QTYPE.A) is True
    assert rule.matches("tracker.example.com", QTYPE.A) is False
    assert rule.matches("a.tracker.example.com.", QTYPE.A) is False
    assert rule.matches("tracker.example.com.au.", QTYPE.A) is False
    assert rule.matches("example.com.", QTYPE.A) is False


def test_exact_rule_host_with_trailing_dot_is_not_doubled():
    rule = FilterRule("tracker.example.com.", QTYPE.TXT, exact=True)
    assert rule.matches("tracker.example.com.", QTYPE.TXT) is True
    assert rule.matches("tracker.example.com..", QTYPE.TXT) is False


@pytest.mark.parametrize("qtype", [QTYPE.A, QTYPE.AAAA, QTYPE.MX, QTYPE.TXT])
def test_wildcard_rule_ignores_query_type(qtype):
    rule = FilterRule("ads.example.com", ALL_QTYPES)
    assert rule.is_wildcard
    assert rule.matches("ads.example.com.", qtype) is True


def test_wildcard_rule_ignores_exact_flag():
    """
    Brief: A wildcard-type rule uses substring matching even if exact is set.

    Inputs:
      - None

    Outputs:
      - None: Asserts subdomains are still blocked
    """
    rule = FilterRule("ads.example.com", ALL_QTYPES, exact=True)
    assert rule.matches("sub.ads.example.com.", QTYPE.A) is True


def test_describe_mentions_type_and_mode():
    assert FilterRule("ads.example.com").describe() == "ads.example.com (ALL, contains)"
    assert (
        FilterRule("ads.example.com", QTYPE.AAAA, exact=True).describe()
        == "ads.example.com (AAAA, exact)"
    )


def test_empty_filter_set_blocks_nothing():
    fs = FilterSet()
    assert len(fs) == 0
    assert fs.matches("anything.example.", QTYPE.A) is False
    assert fs.matching_rule("anything.example.", QTYPE.A) is None


def test_filter_set_returns_first_matching_rule():
    """
    Brief: Evaluation stops at the first rule that matches.

    Inputs:
      - None

    Outputs:
      - None: Asserts the earlier of two overlapping rules is reported
    """
    first = FilterRule("example.com", QTYPE.A, exact=False)
    second = FilterRule("ads.example.com", ALL_QTYPES)
    fs = FilterSet([first, second])

    assert fs.matching_rule("ads.example.com.", QTYPE.A) is first
    assert fs.matching_rule("ads.example.com.", QTYPE.AAAA) is second
    assert fs.matches("other.org.", QTYPE.A) is False
    assert list(fs) == [first, second]


def test_filter_set_all_type_scenario():
    """
    Brief: A type ALL rule blocks A/AAAA and subdomains but not the parent.

    Inputs:
      - None

    Outputs:
      - None
    """
    fs = FilterSet([FilterRule("ads.example.com", ALL_QTYPES)])
    assert fs.matches("ads.example.com.", QTYPE.A)
    assert fs.matches("ads.example.com.", QTYPE.AAAA)
    assert fs.matches("sub.ads.example.com.", QTYPE.A)
    assert not fs.matches("example.com.", QTYPE.A)


def test_any_record_type_rule_is_not_a_wildcard():
    """
    Brief: A rule for the DNS type ANY (255) only applies to ANY queries.

    Inputs:
      - None

    Outputs:
      - None: Asserts exact matching is kept and other types pass
    """
    rule = FilterRule("example.com", QTYPE.ANY, exact=True)

    assert not rule.is_wildcard
    assert rule.matches("example.com.", QTYPE.ANY) is True
    assert rule.matches("sub.example.com.", QTYPE.ANY) is False
    assert rule.matches("example.com.", QTYPE.A) is False
    assert rule.describe() == "example.com (ANY, exact)"
