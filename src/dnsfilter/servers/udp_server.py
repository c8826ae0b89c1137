import logging
import socketserver
from typing import Optional

from .handler import RequestHandler

logger = logging.getLogger("dnsfilter.server")


class DNSUDPHandler(socketserver.BaseRequestHandler):
    """
    Handles UDP DNS requests.
    This class is instantiated for each incoming DNS query.

    Example use:
        This handler is used internally by the DNSServer and is not
        typically instantiated directly by users.
    """

    request_handler: Optional[RequestHandler] = None

    def handle(self):
        """Process a single UDP DNS query.

        Inputs:
          - None (called by socketserver for each UDP datagram).
        Outputs:
          - None; sends at most one DNS response back to the client.
        """
        data, sock = self.request
        handler = self.request_handler
        if handler is None:
            logger.error("No request handler installed; dropping datagram")
            return

        wire = handler.handle_wire(data)
        if not wire:
            return
        try:
            sock.sendto(wire, self.client_address)
        except OSError as e:
            logger.warning("Failed to send reply to %s: %s", self.client_address, e)


class DNSServer:
    """A threaded UDP DNS server wrapper.

    Example use:
        >>> from dnsfilter.servers.udp_server import DNSServer
        >>> import threading
        >>> server = DNSServer("127.0.0.1", 5355, handler)  # doctest: +SKIP
        >>> threading.Thread(target=server.serve_forever, daemon=True).start()  # doctest: +SKIP
        >>> server.stop()  # doctest: +SKIP
    """

    def __init__(self, host: str, port: int, request_handler: RequestHandler) -> None:
        """Initialize a UDP DNSServer.

        Inputs:
            host: The host to listen on.
            port: The port to listen on.
            request_handler: RequestHandler answering each datagram.
        """
        # One handler class per server, bound to its own RequestHandler.
        self.handler_class = type(
            "BoundDNSUDPHandler",
            (DNSUDPHandler,),
            {"request_handler": request_handler},
        )
        try:
            self.server = socketserver.ThreadingUDPServer(
                (host, port), self.handler_class
            )
        except PermissionError as e:
            logger.error(
                "Permission denied when binding to %s:%d. Try a port >1024 or "
                "run with elevated privileges: %s",
                host,
                port,
                e,
            )
            raise

        # Ensure request handler threads do not block shutdown
        self.server.daemon_threads = True
        logger.debug("DNS UDP server bound to %s:%d", host, port)

    @property
    def server_address(self):
        return self.server.server_address

    def serve_forever(self) -> None:
        """Start the UDP server loop and listen for requests.

        Inputs:
          - None
        Outputs:
          - None; runs until shutdown is requested or KeyboardInterrupt occurs.
        """
        try:
            self.server.serve_forever()
        except KeyboardInterrupt:
            pass

    def stop(self) -> None:
        """Request graceful shutdown and close the underlying UDP socket.

        Inputs:
          - None
        Outputs:
          - None; best-effort shutdown suitable for use from signal handlers.
        """
        try:
            # First ask the ThreadingUDPServer loop to stop accepting requests.
            self.server.shutdown()
        except Exception:
            logger.exception("Error while shutting down UDP server")
        try:
            # Then close the socket so resources are released promptly.
            self.server.server_close()
        except Exception:
            logger.exception("Error while closing UDP server socket")
