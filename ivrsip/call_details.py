"""Thread-safe record of a call's identity and progress."""

import enum
import threading


class CallStatus(enum.Enum):
    REGISTERED = enum.auto()
    REGISTERING = enum.auto()
    CONNECTED = enum.auto()
    CONNECTING = enum.auto()
    TERMINATED = enum.auto()
    TERMINATING = enum.auto()


class CallDetails:
    """Call-ID, caller and callee URIs and state, guarded by a lock.

    The fields may be changed by the receiving thread and the main thread at
    the same time, so every access takes the lock.
    """

    def __init__(self, call_id, caller_uri, callee_uri):
        self._lock = threading.Lock()
        self._call_id = call_id
        self._caller_uri = caller_uri
        self._callee_uri = callee_uri
        self._state = None

    @property
    def call_id(self):
        with self._lock:
            return self._call_id

    @call_id.setter
    def call_id(self, value):
        with self._lock:
            self._call_id = value

    @property
    def caller_uri(self):
        with self._lock:
            return self._caller_uri

    @caller_uri.setter
    def caller_uri(self, value):
        with self._lock:
            self._caller_uri = value

    @property
    def callee_uri(self):
        with self._lock:
            return self._callee_uri

    @callee_uri.setter
    def callee_uri(self, value):
        with self._lock:
            self._callee_uri = value

    @property
    def state(self):
        with self._lock:
            return self._state

    @state.setter
    def state(self, value):
        with self._lock:
            self._state = value