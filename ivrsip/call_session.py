"""Call sessions, the SIP clients taking part in them, and their registry."""

from __future__ import annotations

import enum
import functools
import logging
import threading
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class SipClient:
    """A SIP party: its number and the (ip, port) it sends from."""

    number: str
    address: tuple = ("0.0.0.0", 0)

    @property
    def ip(self):
        return self.address[0]

    @property
    def port(self):
        return self.address[1]

    def __eq__(self, other):
        if not isinstance(other, SipClient):
            return NotImplemented
        return self.number == other.number

    def __hash__(self):
        return hash(self.number)


class CallState(enum.Enum):
    INVITED = enum.auto()
    BUSY = enum.auto()
    UNAVAILABLE = enum.auto()
    CANCEL = enum.auto()
    BYE = enum.auto()
    CONNECTED = enum.auto()


class CallSession:
    """State of one call, identified by its Call-ID."""

    def __init__(self, call_id):
        self.call_id = call_id
        self._state = CallState.INVITED
        self.src = None
        self.dest = None
        self.src_rtp_port = 0
        self.dest_rtp_port = 0
        self.from_tag = ""
        self.to_tag = ""
        self.media_session = None

    @property
    def state(self):
        return self._state

    @state.setter
    def state(self, value):
        if value == self._state:
            return
        self._state = value
        if value is CallState.CONNECTED:
            logger.info("Session Created %s", self.call_id)

    def set_src(self, src, rtp_port):
        self.src = src
        self.src_rtp_port = rtp_port

    def set_dest(self, dest, rtp_port):
        self.dest = dest
        self.dest_rtp_port = rtp_port

    def __str__(self):
        if self.src is None or self.dest is None:
            raise ValueError(f"call {self.call_id} has no source or destination")
        return f"CallID: {self.call_id} Src: {self.src.number} Dest: {self.dest.number}"


class SessionManager:
    """Registry of call sessions keyed by Call-ID."""

    def __init__(self):
        self._sessions = {}
        self._lock = threading.Lock()

    def get_session(self, call_id):
        """Return the session for ``call_id``, or None."""
        with self._lock:
            return self._sessions.get(call_id)

    def create_session(self, call_id):
        """Create a session; return None if one already exists for ``call_id``."""
        logger.info("Creating session for callID: %s", call_id)
        with self._lock:
            if call_id in self._sessions:
                logger.error("Session already exists")
                return None
            session = CallSession(call_id)
            self._sessions[call_id] = session
            return session

    def find_session(self, media_session):
        """Return the call session that owns ``media_session``, or None."""
        with self._lock:
            for session in self._sessions.values():
                if session.media_session is media_session:
                    return session
        return None

    def remove_session(self, session):
        """Remove a session given either the session or its Call-ID."""
        call_id = session.call_id if isinstance(session, CallSession) else session
        with self._lock:
            self._sessions.pop(call_id, None)

    def __len__(self):
        with self._lock:
            return len(self._sessions)


@functools.lru_cache(maxsize=None)
def get_session_manager():
    """Return the process-wide session manager."""
    return SessionManager()