"""The IVR application: SIP signalling towards the server and call handling."""

from __future__ import annotations

import argparse
import contextlib
import functools
import logging
import os
import sys
import threading
import time
from pathlib import Path

from .call_session import CallState, SipClient, get_session_manager
from .constants import (
    IVR_ACCOUNT_NAME,
    MEDIA_SERVER_PORT_DEFAULT,
    SERVER_PORT_DEFAULT,
    TYPE_ACK,
    TYPE_BUSY,
    TYPE_BYE,
    TYPE_CANCEL,
    TYPE_INVITE,
    TYPE_OK,
    TYPE_REFER_ACCEPTED,
    TYPE_REGISTER,
    TYPE_REQUEST_TERMINATED,
    TYPE_RINGING,
    TYPE_TRYING,
    TYPE_UNAVAILABLE,
)
from .dtmf import DTMFHandler
from .factory import create_message
from .idgen import generate_branch, generate_id
from .media_manager import get_media_manager
from .sip_message import SipMessage, SipSdpMessage
from .udp_client import UdpClient

logger = logging.getLogger(__name__)

REGISTER_INTERVAL = 60
UNAVAILABLE_DELAY = 7
REDIRECT_DELAY = 5


@functools.lru_cache(maxsize=None)
def _process_tag():
    return generate_id(9)


class Application:
    """Registers with the SIP server, answers calls and drives their media.

    ``transport`` needs ``send``, ``start_receive`` and ``close``; by default
    a UdpClient towards the server feeding ``handle_datagram``.
    """

    def __init__(
        self,
        server_ip,
        server_port,
        app_ip,
        app_port,
        transport=None,
        sessions=None,
        media=None,
        media_dir=None,
        sleep=time.sleep,
    ):
        self.server_ip = server_ip
        self.server_port = server_port
        self.app_ip = app_ip
        self.app_port = app_port
        self._sessions = sessions if sessions is not None else get_session_manager()
        self._media = media if media is not None else get_media_manager()
        self._media_dir = Path(media_dir) if media_dir is not None else None
        self._sleep = sleep
        self._stop = threading.Event()
        self._register_thread = None
        self._closed = False
        logger.info(
            "Application created: %s:%s, %s:%s", server_ip, server_port, app_ip, app_port
        )
        self._handlers = {
            TYPE_CANCEL: self._ignore,
            TYPE_INVITE: self._on_invite,
            TYPE_TRYING: self._ignore,
            TYPE_RINGING: self._ignore,
            TYPE_BUSY: self._ignore,
            TYPE_UNAVAILABLE: self._on_unavailable,
            TYPE_OK: self._on_ok,
            TYPE_ACK: self._on_ack,
            TYPE_BYE: self._on_bye,
            TYPE_REQUEST_TERMINATED: self._ignore,
            TYPE_REFER_ACCEPTED: self._on_refer_accepted,
        }
        self._transport = (
            transport
            if transport is not None
            else UdpClient(server_ip, server_port, self.handle_datagram)
        )
        self._dtmf_handler = DTMFHandler(
            self, self._sessions, self._media, self._media_dir, sleep
        )
        logger.info("Media dir: %s", self._media_dir or os.environ.get("MEDIA_DIR"))

    @property
    def app_tag(self):
        """The tag this process uses in its From and To headers."""
        return _process_tag()

    def _media_file(self, name):
        directory = self._media_dir
        if directory is None:
            env = os.environ.get("MEDIA_DIR")
            if env is None:
                raise RuntimeError("MEDIA_DIR is not set")
            directory = Path(env)
        return str(directory / name)

    def _account_uri(self):
        return f"<sip:{IVR_ACCOUNT_NAME}@{self.server_ip}>"

    def _contact(self):
        return f"<sip:{IVR_ACCOUNT_NAME}@{self.server_ip}:{self.server_port}>"

    def send_to_server(self, message):
        """Serialise ``message`` and send it to the SIP server."""
        return self._transport.send(message.to_payload())

    def handle_datagram(self, data, source):
        """Parse received text and dispatch it to the handler for its type."""
        message = create_message(data)
        if message is None:
            return
        handler = self._handlers.get(message.type)
        if handler is not None:
            handler(message)

    def register(self):
        """Send one REGISTER to the server and return the message sent."""
        message = SipMessage()
        message.header = f"REGISTER sip:{self.server_ip} SIP/2.0"
        message.to = f"{IVR_ACCOUNT_NAME}{self._account_uri()}"
        message.from_header = f"{IVR_ACCOUNT_NAME}{self._account_uri()};tag={self.app_tag}"
        message.call_id = generate_id(9)
        message.cseq = f"1 {TYPE_REGISTER}"
        message.via = f"SIP/2.0/UDP {self.server_ip}:{self.server_port}"
        message.contact = self._contact()
        self.send_to_server(message)
        return message

    def start(self):
        """Start receiving and re-register with the server every minute."""
        if self._closed:
            raise RuntimeError("application is closed")
        if self._register_thread is not None:
            raise RuntimeError("already started")
        self._transport.start_receive()
        self._register_thread = threading.Thread(
            target=self._register_loop, name="sip-register", daemon=True
        )
        self._register_thread.start()

    def _register_loop(self):
        while not self._stop.is_set():
            try:
                self.register()
            except OSError as exc:
                logger.error("Register failed: %s", exc)
            self._stop.wait(REGISTER_INTERVAL)

    def close(self):
        """Stop registering and close the transport."""
        if self._closed:
            return
        self._closed = True
        self._stop.set()
        thread = self._register_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._transport.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _ignore(self, message):
        pass

    def _on_invite(self, message):
        if not isinstance(message, SipSdpMessage):
            logger.error("INVITE without SDP body: %s", message.call_id)
            return
        call_id = message.call_id
        logger.info("Call ID: %s", call_id)
        if self._sessions.get_session(call_id) is not None:
            logger.info("Session already exists")
            return
        call_session = self._sessions.create_session(call_id)
        if call_session is None:
            return
        call_session.set_src(SipClient(message.from_number, message.src), message.rtp_port)
        call_session.from_tag = message.from_tag

        media_session = self._media.create_session(
            message.rtp_host, message.rtp_port, message.media_description
        )
        if media_session is None:
            logger.error("Failed to create media session -> remove session")
            self._sessions.remove_session(call_session)
            return
        call_session.media_session = media_session
        call_session.state = CallState.CONNECTED
        media_session.set_callback(self._dtmf_handler)

        message.header = TYPE_OK
        message.to = f"{IVR_ACCOUNT_NAME}{self._account_uri()};tag={self.app_tag}"
        message.contact = self._contact()
        message.rtp_host = self.app_ip
        message.rtp_port = self.app_port
        self.send_to_server(message)

    def _on_unavailable(self, message):
        logger.info("OnUnavailable: %s", message.call_id)
        call_session = self._sessions.get_session(message.call_id)
        if call_session is None:
            return
        media_session = call_session.media_session
        if media_session is None:
            logger.error("MediaSession not found")
            return
        media_session.pb_source_file = self._media_file("agent_busy.wav")
        self._media.update_media_session(media_session)
        self._sleep(UNAVAILABLE_DELAY)

        number = call_session.src.number
        bye = SipMessage()
        bye.header = f"BYE sip:{number}@{self.server_ip}:{self.server_port} SIP/2.0"
        bye.to = f"<sip:{number}@{self.server_ip}>;tag={call_session.from_tag}"
        bye.from_header = f"{self._account_uri()};tag={self.app_tag}"
        bye.via = f"SIP/2.0/UDP {self.app_ip}:{self.app_port};branch={generate_branch()}"
        bye.call_id = call_session.call_id
        bye.cseq = f"2 {TYPE_BYE}"
        bye.contact = self._contact()
        bye.content_length = "0"
        self.send_to_server(bye)

    def _on_bye(self, message):
        logger.info("OnBye: %s", message.call_id)
        call_session = self._sessions.get_session(message.call_id)
        if call_session is None:
            return
        message.header = TYPE_OK
        self.send_to_server(message)

        call_session.state = CallState.BYE
        media_session = call_session.media_session
        self._sessions.remove_session(call_session)
        if media_session is None:
            logger.error("MediaSession not found")
            return
        self._media.stop_media_session(media_session)
        self._media.remove_session(media_session)

    def _on_ok(self, message):
        logger.info("OnOk: %s", message.call_id)
        if TYPE_REGISTER in message.cseq:
            logger.info("Register succeeded")
        elif TYPE_BYE in message.cseq:
            self._on_bye(message)
        else:
            logger.warning("Unknown OK message")

    def _on_ack(self, message):
        logger.info("OnAck: %s", message.call_id)
        call_session = self._sessions.get_session(message.call_id)
        if call_session is None:
            return
        call_session.state = CallState.CONNECTED
        media_session = call_session.media_session
        if media_session is None:
            logger.error("MediaSession not found")
            return
        media_session.pb_source_file = self._media_file("welcome.wav")
        self._media.start_media_session(media_session)

    def _on_refer_accepted(self, message):
        logger.info("OnReferAccepted: %s", message.call_id)
        call_session = self._sessions.get_session(message.call_id)
        if call_session is None:
            logger.error("CallSession not found")
            return
        call_session.state = CallState.CONNECTED
        media_session = call_session.media_session
        if media_session is None:
            logger.error("MediaSession not found")
            return
        media_session.pb_source_file = self._media_file("redirecting.wav")
        self._media.update_media_session(media_session)
        self._sleep(REDIRECT_DELAY)
        media_session.pb_source_file = self._media_file("phone_holding_music.wav")
        self._media.update_media_session(media_session)


def build_parser():
    """Return the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="ivrsip",
        description="Open source application for an automated telephone system",
    )
    parser.add_argument("-i", "--server-ip", help="Sip server ip")
    parser.add_argument(
        "-p",
        "--server-port",
        type=int,
        default=SERVER_PORT_DEFAULT,
        help=f"Sip server port (default: {SERVER_PORT_DEFAULT}).",
    )
    parser.add_argument("-c", "--app-ip", help="IVR application ip")
    parser.add_argument(
        "-m",
        "--app-port",
        type=int,
        default=MEDIA_SERVER_PORT_DEFAULT,
        help=f"IVR application port (default: {MEDIA_SERVER_PORT_DEFAULT}).",
    )
    return parser


def main(argv=None):
    """Run the IVR until a line is read from standard input."""
    args = build_parser().parse_args(argv)
    if args.server_ip is None or args.app_ip is None:
        print("Please enter ip and port.", file=sys.stderr)
        return 1
    logging.basicConfig(level=logging.INFO)
    with Application(args.server_ip, args.server_port, args.app_ip, args.app_port) as app:
        app.start()
        logger.info("Application has been started ...")
        with contextlib.suppress(EOFError, KeyboardInterrupt):
            input()
    return 0