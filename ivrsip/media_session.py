"""A media session on the media server and its DTMF polling."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

logger = logging.getLogger(__name__)

DTMF_POLL_INTERVAL = 0.1


class MediaSessionCallback(ABC):
    """Receiver of DTMF events detected on a media session."""

    @abstractmethod
    def on_dtmf_event(self, session, event):
        """Handle the DTMF ``event`` text received on ``session``."""


class MediaSession:
    """An RTP stream to one remote party, played and listened to by the media server."""

    def __init__(self, client_ip, client_rtp_port, media_description):
        self.remote_host = client_ip
        self.remote_port = client_rtp_port
        self.media_description = media_description
        self.session_id = ""
        self._pb_source_file = ""
        self._callback = None
        self._reader = None
        self._stop = None
        logger.info("MediaSession created for client: %s:%s", client_ip, client_rtp_port)

    @property
    def pb_source_file(self):
        """The file played back to the remote party."""
        return self._pb_source_file

    @pb_source_file.setter
    def pb_source_file(self, value):
        if not Path(value).exists():
            logger.error("File does not exist: %s", value)
            return
        self._pb_source_file = str(value)

    def set_callback(self, callback):
        self._callback = callback

    def start_read_dtmf(self, media_client):
        """Poll ``media_client.read_dtmf`` in the background and report events."""
        self.stop_read_dtmf()
        stop = threading.Event()
        self._stop = stop
        self._reader = threading.Thread(
            target=self._read_loop, args=(media_client, stop), name="dtmf-reader", daemon=True
        )
        self._reader.start()

    def _read_loop(self, media_client, stop):
        while not stop.is_set():
            try:
                dtmf = media_client.read_dtmf(self)
                if dtmf:
                    logger.info("DTMF: %s", dtmf)
                    callback = self._callback
                    if callback is not None:
                        callback.on_dtmf_event(self, dtmf)
            except Exception:
                logger.exception("DTMF polling failed")
            stop.wait(DTMF_POLL_INTERVAL)

    def stop_read_dtmf(self):
        """Stop the DTMF polling thread, if one is running."""
        if self._stop is not None:
            self._stop.set()
        reader = self._reader
        if reader is not None and reader is not threading.current_thread():
            reader.join()
        self._reader = None
        self._stop = None

    @property
    def reading_dtmf(self):
        """Whether DTMF polling is running."""
        return self._reader is not None and self._reader.is_alive()