"""Request/response client for the media server's JSON control protocol."""

from __future__ import annotations

import json
import logging
import socket
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9999
BUFFER_SIZE = 1024
REQUEST_TIMEOUT = 30

REQUEST_SUCCESS = "success"
REQUEST_TYPE = "type"
REQUEST_DATA = "data"
REQUEST_SESSION = "session"
REQUEST_ERROR = "error"

REMOTE_HOST = "remote_host"
REMOTE_PORT = "remote_port"
REMOTE_MEDIA_DESC = "remote_media_desc"
PLAYBACK_SOURCE = "playback_source"

REQUEST_TYPE_INIT_SESSION = "init_session"
REQUEST_TYPE_START_SESSION = "start_session"
REQUEST_TYPE_STOP_SESSION = "stop_session"
REQUEST_TYPE_CLOSE_SESSION = "close_session"
REQUEST_TYPE_UPDATE_SESSION = "update_session"
REQUEST_TYPE_GET_DTMF_EVENT = "get_dtmf_event"


class MediaClientError(Exception):
    """Raised when the media server cannot be reached or answers badly."""


@dataclass
class MediaRequest:
    """One request to the media server."""

    type: str
    session_id: str = ""
    data: dict | None = None

    def payload(self):
        """Return the request as compact JSON text."""
        request = {REQUEST_TYPE: self.type, REQUEST_SESSION: self.session_id}
        if self.data:
            request[REQUEST_DATA] = self.data
        return json.dumps(request, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _optional_string(obj, key):
    value = obj.get(key, "")
    if not isinstance(value, str):
        raise MediaClientError(f"field {key!r} is not a string: {value!r}")
    return value


@dataclass
class MediaResponse:
    """The media server's answer to a request."""

    success: bool
    type: str
    session_id: str = ""
    data: str = ""
    error: str = ""

    @classmethod
    def from_json(cls, text):
        """Parse a response; raise MediaClientError if it is malformed."""
        try:
            obj = json.loads(text)
        except (ValueError, TypeError) as exc:
            raise MediaClientError(f"invalid response: {exc}") from exc
        if not isinstance(obj, dict) or REQUEST_SUCCESS not in obj or REQUEST_TYPE not in obj:
            raise MediaClientError("response lacks success or type")
        success = obj[REQUEST_SUCCESS]
        if not isinstance(success, bool):
            raise MediaClientError(f"field 'success' is not a boolean: {success!r}")
        return cls(
            success=success,
            type=_optional_string(obj, REQUEST_TYPE),
            session_id=_optional_string(obj, REQUEST_SESSION),
            data=_optional_string(obj, REQUEST_DATA),
            error=_optional_string(obj, REQUEST_ERROR),
        )


def _session_data(session):
    return {
        REMOTE_HOST: session.remote_host,
        REMOTE_PORT: session.remote_port,
        REMOTE_MEDIA_DESC: session.media_description,
        PLAYBACK_SOURCE: session.pb_source_file,
    }


class MediaClient:
    """Talks to the media server, one TCP connection per request."""

    def __init__(self, host=DEFAULT_HOST, port=DEFAULT_PORT, timeout=REQUEST_TIMEOUT):
        self.host = host
        self.port = port
        self.timeout = timeout

    def _exchange(self, request):
        try:
            with socket.create_connection((self.host, self.port), timeout=self.timeout) as sock:
                sock.sendall(request.payload().encode("utf-8"))
                data = sock.recv(BUFFER_SIZE)
        except OSError as exc:
            raise MediaClientError(f"request failed: {exc}") from exc
        if not data:
            raise MediaClientError("Server closed the connection")
        text = data.split(b"\0", 1)[0].decode("utf-8", errors="replace")
        return MediaResponse.from_json(text)

    def _request(self, request, action):
        try:
            response = self._exchange(request)
        except MediaClientError as exc:
            logger.error("Failed to send request: %s", exc)
            return None
        if not response.success:
            logger.error("Failed to %s session: %s", action, response.error)
        return response

    def init_session(self, session):
        """Create the session on the server and store its id on ``session``."""
        request = MediaRequest(REQUEST_TYPE_INIT_SESSION, data=_session_data(session))
        response = self._request(request, "initialize")
        if response is not None and response.success and response.session_id:
            session.session_id = response.session_id
            return True
        logger.error("Failed to initialize session")
        return False

    def start_session(self, session):
        """Start streaming on the server; return whether it succeeded."""
        request = MediaRequest(
            REQUEST_TYPE_START_SESSION, session.session_id, _session_data(session)
        )
        response = self._request(request, "start")
        return response is not None and response.success

    def stop_session(self, session):
        """Stop streaming on the server; return whether it succeeded."""
        response = self._request(MediaRequest(REQUEST_TYPE_STOP_SESSION, session.session_id), "stop")
        return response is not None and response.success

    def close_session(self, session):
        """Release the session on the server; return whether it succeeded."""
        response = self._request(
            MediaRequest(REQUEST_TYPE_CLOSE_SESSION, session.session_id), "close"
        )
        return response is not None and response.success

    def update_session(self, session):
        """Send the session's current settings; return whether it succeeded."""
        request = MediaRequest(
            REQUEST_TYPE_UPDATE_SESSION, session.session_id, _session_data(session)
        )
        response = self._request(request, "update")
        return response is not None and response.success

    def read_dtmf(self, session):
        """Return the pending DTMF event text, or an empty string."""
        response = self._request(
            MediaRequest(REQUEST_TYPE_GET_DTMF_EVENT, session.session_id), "read DTMF of"
        )
        if response is not None and response.success:
            return response.data
        return ""