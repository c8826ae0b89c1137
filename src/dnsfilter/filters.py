from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Tuple

from dnslib import QTYPE

# Rules configured with type "ALL" carry this qtype and match every query type.
# Kept apart from every real record type, including ANY (255).
ALL_QTYPES: Optional[int] = None


@dataclass(frozen=True)
class FilterRule:
    """
    Brief: A single block rule.

    Inputs:
      - host: Domain pattern (substring match) or exact domain name.
      - qtype: DNS record type the rule applies to, or ALL_QTYPES for all types.
      - exact: When True the queried name must equal host plus the trailing
        "."; otherwise host only has to appear somewhere in the queried name.
        Ignored for ALL_QTYPES rules, which always use substring matching.

    Outputs:
      - FilterRule instance.

    Example:
      >>> rule = FilterRule("ads.example.com", QTYPE.A, exact=True)
      >>> rule.matches("ads.example.com.", QTYPE.A)
      True
      >>> rule.matches("x.ads.example.com.", QTYPE.A)
      False
    """

    host: str
    qtype: Optional[int] = ALL_QTYPES
    exact: bool = False

    @property
    def is_wildcard(self) -> bool:
        return self.qtype is ALL_QTYPES

    def applies_to(self, qtype: int) -> bool:
        """Return True when this rule is relevant for queries of qtype."""
        return self.is_wildcard or self.qtype == qtype

    def matches(self, name: str, qtype: int) -> bool:
        """
        Brief: Decide whether this rule blocks (name, qtype).

        Inputs:
          - name: Queried name in terminator-qualified form ("example.com.").
          - qtype: Numeric query type.

        Outputs:
          - bool: True when the question should be dropped.
        """
        if not self.applies_to(qtype):
            return False
        if self.exact and not self.is_wildcard:
            target = self.host if self.host.endswith(".") else f"{self.host}."
            return name == target
        return self.host in name

    def describe(self) -> str:
        if self.is_wildcard:
            qtype_label = "ALL"
        else:
            qtype_label = QTYPE.get(self.qtype, str(self.qtype))
        mode = "exact" if (self.exact and not self.is_wildcard) else "contains"
        return f"{self.host} ({qtype_label}, {mode})"


class FilterSet:
    """
    Brief: Ordered collection of FilterRule evaluated with first-match semantics.

    Inputs:
      - rules: Iterable of FilterRule; evaluation order follows iteration order.

    Outputs:
      - FilterSet instance. Read-only after construction, so a single instance
        is shared by every request thread.

    Example:
      >>> fs = FilterSet([FilterRule("doubleclick")])
      >>> fs.matches("ad.doubleclick.net.", QTYPE.AAAA)
      True
      >>> FilterSet().matches("example.com.", QTYPE.A)
      False
    """

    def __init__(self, rules: Optional[Iterable[FilterRule]] = None) -> None:
        self._rules: Tuple[FilterRule, ...] = tuple(rules or ())

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[FilterRule]:
        return iter(self._rules)

    def __repr__(self) -> str:
        return f"FilterSet({len(self._rules)} rules)"

    def matching_rule(self, name: str, qtype: int) -> Optional[FilterRule]:
        """Return the first rule blocking (name, qtype), or None when allowed."""
        for rule in self._rules:
            if rule.matches(name, qtype):
                return rule
        return None

    def matches(self, name: str, qtype: int) -> bool:
        return self.matching_rule(name, qtype) is not None
