"""Bookkeeping of media sessions and their control through the media client."""

from __future__ import annotations

import functools
import logging
import threading

from .media_client import MediaClient
from .media_session import MediaSession

logger = logging.getLogger(__name__)


class MediaManager:
    """Creates, starts, updates and removes media sessions."""

    def __init__(self, client=None):
        self._client = client if client is not None else MediaClient()
        self._sessions = {}
        self._lock = threading.Lock()

    def create_session(self, client_ip, client_rtp_port, media_description):
        """Create a session on the media server; return None if that fails."""
        logger.info("Creating media session: %s:%s", client_ip, client_rtp_port)
        session = MediaSession(client_ip, client_rtp_port, media_description)
        if not self._client.init_session(session):
            return None
        with self._lock:
            self._sessions[session.session_id] = session
        return session

    def remove_session(self, session):
        """Close a known session on the server and forget it."""
        if session is None:
            return
        logger.info("Removing session: %s", session.session_id)
        with self._lock:
            known = session.session_id in self._sessions
        if known:
            self._client.close_session(session)
            with self._lock:
                self._sessions.pop(session.session_id, None)

    def start_media_session(self, session):
        """Start playback and begin polling for DTMF."""
        logger.info("Starting media session: %s:%s", session.remote_host, session.remote_port)
        self._client.start_session(session)
        session.start_read_dtmf(self._client)
        return True

    def stop_media_session(self, session):
        """Stop polling for DTMF and stop playback."""
        logger.info("Stopping media session: %s:%s", session.remote_host, session.remote_port)
        session.stop_read_dtmf()
        self._client.stop_session(session)
        return True

    def update_media_session(self, session):
        """Send the session's current settings to the media server."""
        logger.info("Updating media session: %s:%s", session.remote_host, session.remote_port)
        self._client.update_session(session)
        return True

    def __contains__(self, session):
        with self._lock:
            return self._sessions.get(session.session_id) is session

    def __len__(self):
        with self._lock:
            return len(self._sessions)


@functools.lru_cache(maxsize=None)
def get_media_manager():
    """Return the process-wide media manager."""
    return MediaManager()