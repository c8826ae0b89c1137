from __future__ import annotations

import logging
from typing import Optional

from dnslib import OPCODE, DNSError, DNSHeader, DNSRecord
from dnslib.label import DNSBuffer

from .forwarder import ForwardingError
from .pipeline import PipelineError, QueryPipeline


class _UncompressedBuffer(DNSBuffer):
    """DNSBuffer that writes every name in full instead of using pointers."""

    def encode_name(self, name):
        self.encode_name_nocompress(name)


def pack_uncompressed(record: DNSRecord) -> bytes:
    """
    Brief: Serialize record to wire format with name compression disabled.

    Inputs:
      - record: DNSRecord to pack.

    Outputs:
      - bytes: Wire-format message.
    """
    record.set_header_qa()
    buffer = _UncompressedBuffer()
    record.header.pack(buffer)
    for q in record.questions:
        q.pack(buffer)
    for rr in record.rr:
        rr.pack(buffer)
    for rr in record.auth:
        rr.pack(buffer)
    for rr in record.ar:
        rr.pack(buffer)
    return bytes(buffer.data)


class RequestHandler:
    """
    Brief: Boundary between the listener and the query pipeline.

    Inputs:
      - pipeline: QueryPipeline used for standard queries.
      - logger: Optional logger (defaults to "dnsfilter.handler").

    Outputs:
      - RequestHandler instance; safe to share across request threads.

    Example:
      >>> handler = RequestHandler(pipeline)  # doctest: +SKIP
      >>> reply_wire = handler.handle_wire(query_wire)  # doctest: +SKIP
    """

    def __init__(
        self,
        pipeline: QueryPipeline,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.pipeline = pipeline
        self._logger = logger or logging.getLogger("dnsfilter.handler")

    def handle(self, request: DNSRecord) -> DNSRecord:
        """
        Brief: Build the reply for a parsed request.

        Inputs:
          - request: Parsed inbound DNSRecord.

        Outputs:
          - DNSRecord: Reply bound to request (same id, opcode and questions).
            Always returned, even when forwarding failed, so the client is
            never left waiting.
        """
        response = DNSRecord(
            DNSHeader(
                id=request.header.id,
                bitmap=request.header.bitmap,
                qr=1,
                ra=1,
                aa=0,
            ),
            questions=list(request.questions),
        )

        # Only standard lookups are processed; NOTIFY, UPDATE and friends get
        # the empty reply.
        if request.header.opcode != OPCODE.QUERY:
            self._logger.debug(
                "Ignoring opcode %s from request id %d",
                OPCODE.get(request.header.opcode, str(request.header.opcode)),
                request.header.id,
            )
            return response

        try:
            response.rr = self.pipeline.process(request)
        except (ForwardingError, PipelineError) as e:
            self._logger.error("Error during query: %s", e)

        return response

    def handle_wire(self, data: bytes) -> bytes:
        """
        Brief: Wire-level wrapper around handle().

        Inputs:
          - data: Raw datagram payload.

        Outputs:
          - bytes: Uncompressed wire reply, or b"" when data is not a DNS
            message (nothing should be sent back).
        """
        try:
            request = DNSRecord.parse(data)
        except DNSError as e:
            self._logger.warning("Dropping unparseable request: %s", e)
            return b""
        return pack_uncompressed(self.handle(request))
