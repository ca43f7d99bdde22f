"""UDP transport towards the SIP server, with a background receiver."""

import contextlib
import logging
import socket
import threading

logger = logging.getLogger(__name__)

BUFFER_SIZE = 2048
_POLL_INTERVAL = 0.2


def _c_string(data):
    return data.split(b"\0", 1)[0]


class UdpClient:
    """Sends datagrams to one server and hands received ones to a callback.

    ``on_message`` is called from the receiver thread as
    ``on_message(text, (ip, port))``.
    """

    def __init__(self, ip, port, on_message):
        self._ip = ip
        self._port = port
        self._on_message = on_message
        self._server_address = (ip, port)
        self._running = threading.Event()
        self._thread = None
        self._closed = False
        logger.info("UdpClient: %s:%s", ip, port)
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._sock.bind(("0.0.0.0", 0))
        self._sock.settimeout(_POLL_INTERVAL)

    @property
    def ip(self):
        return self._ip

    @property
    def port(self):
        return self._port

    def start_receive(self):
        """Start the background thread that receives datagrams."""
        if self._closed:
            raise RuntimeError("client is closed")
        if self._thread is not None:
            raise RuntimeError("already receiving")
        self._running.set()
        self._thread = threading.Thread(
            target=self._receive_loop, name="udp-receiver", daemon=True
        )
        self._thread.start()

    def _receive_loop(self):
        while self._running.is_set():
            try:
                data, source = self._sock.recvfrom(BUFFER_SIZE)
            except socket.timeout:
                continue
            except OSError as exc:
                if not self._running.is_set():
                    return
                logger.warning("Receive failed: %s", exc)
                continue
            text = _c_string(data).decode("utf-8", errors="replace")
            logger.info("Received from %s:%s with message: \n%s", source[0], source[1], text)
            if not self._running.is_set():
                return
            try:
                self._on_message(text, source)
            except Exception:
                logger.exception("Message handler failed")

    def send(self, payload):
        """Send ``payload`` to the server; return the number of bytes sent."""
        logger.info("Sending to server with message: %s", payload)
        data = _c_string(payload.encode("utf-8"))
        return self._sock.sendto(data, self._server_address)

    def close(self):
        """Stop receiving and close the socket."""
        if self._closed:
            return
        self._closed = True
        self._running.clear()
        with contextlib.suppress(OSError):
            self._sock.shutdown(socket.SHUT_RDWR)
        self._sock.close()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()