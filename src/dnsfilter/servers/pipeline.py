from __future__ import annotations

import logging
from typing import List, Optional

from dnslib import QTYPE, RR, DNSHeader, DNSQuestion, DNSRecord

from ..filters import FilterSet
from .forwarder import ForwarderPool


class PipelineError(Exception):
    """Brief: Internal failure while processing a query."""

    pass


class MissingAnswersError(PipelineError):
    """Brief: The forwarder reported success but handed back no answer list."""

    pass


def _upstream_question(question: DNSQuestion) -> DNSRecord:
    """Build a fresh recursion-desired query carrying a single question."""
    return DNSRecord(
        DNSHeader(rd=1),
        q=DNSQuestion(question.qname, question.qtype, question.qclass),
    )


class QueryPipeline:
    """
    Brief: Filter, forward and collect answers for every question of a query.

    Inputs:
      - filters: FilterSet consulted before any question is forwarded.
      - pool: ForwarderPool used for questions that are not blocked.
      - logger: Optional logger (defaults to "dnsfilter.pipeline").

    Outputs:
      - QueryPipeline instance; holds no per-request state.

    Notes:
      - A failure to forward any question aborts the whole query; answers for
        earlier questions in the same message are discarded. Queries carry a
        single question in practice, so this means "forwarding failure yields
        an empty reply".
    """

    def __init__(
        self,
        filters: FilterSet,
        pool: ForwarderPool,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.filters = filters
        self.pool = pool
        self._logger = logger or logging.getLogger("dnsfilter.pipeline")

    def process(self, query: DNSRecord) -> List[RR]:
        """
        Brief: Resolve every question in query.

        Inputs:
          - query: Parsed inbound DNSRecord.

        Outputs:
          - list[RR]: Accepted answer records; empty (never None) when every
            question was blocked or the upstream had no matching records.

        Raises:
          - ForwardingError: a question could not be forwarded to any endpoint.
          - MissingAnswersError: the pool returned None instead of a list.
        """
        answers: List[RR] = []

        for question in query.questions:
            name = str(question.qname)
            qtype = question.qtype

            rule = self.filters.matching_rule(name, qtype)
            if rule is not None:
                self._logger.info(
                    "Blocked %s %s by filter %s",
                    name,
                    QTYPE.get(qtype, str(qtype)),
                    rule.describe(),
                )
                continue

            results = self.pool.resolve(_upstream_question(question))
            if results is None:
                raise MissingAnswersError(
                    f"forwarder returned no answer list for {name}"
                )

            # Upstreams may add records for other names (CNAME targets and the
            # like); only records for the queried name are passed on.
            answers.extend(rr for rr in results if str(rr.rname) == name)

        return answers
