"""Reaction to keys pressed by the caller: menu replay, transfer or retry."""

from __future__ import annotations

import enum
import logging
import os
import re
import time
from pathlib import Path

from .call_session import get_session_manager
from .constants import IVR_ACCOUNT_NAME
from .media_manager import get_media_manager
from .media_session import MediaSessionCallback
from .sip_message import SipMessage

logger = logging.getLogger(__name__)

INVALID_CHOICE_DELAY = 5
_INT_PREFIX = re.compile(r"\s*[+-]?\d+")


class DTMFKey(enum.IntEnum):
    KEY_0 = 0
    KEY_1 = 1
    KEY_2 = 2
    KEY_3 = 3
    KEY_4 = 4
    KEY_5 = 5
    KEY_6 = 6
    KEY_7 = 7
    KEY_8 = 8
    KEY_9 = 9
    KEY_UNKNOWN = 10


def _parse_key(event):
    match = _INT_PREFIX.match(event)
    if match is None:
        raise ValueError(f"not a DTMF number: {event!r}")
    return int(match.group())


class DTMFHandler(MediaSessionCallback):
    """Runs the IVR menu: 0 replays the guide, 1-5 transfer to an agent.

    ``app`` supplies ``server_ip``, ``server_port``, ``app_ip``, ``app_port``,
    ``app_tag`` and ``send_to_server``. Prompts are read from ``media_dir``,
    or from the MEDIA_DIR environment variable when it is not given.
    """

    def __init__(self, app, sessions=None, media=None, media_dir=None, sleep=time.sleep):
        self._app = app
        self._sessions = sessions if sessions is not None else get_session_manager()
        self._media = media if media is not None else get_media_manager()
        self._media_dir = Path(media_dir) if media_dir is not None else None
        self._sleep = sleep

    def _media_file(self, name):
        directory = self._media_dir
        if directory is None:
            env = os.environ.get("MEDIA_DIR")
            if env is None:
                raise RuntimeError("MEDIA_DIR is not set")
            directory = Path(env)
        return str(directory / name)

    def on_dtmf_event(self, session, event):
        call_session = self._sessions.find_session(session)
        number = _parse_key(event)
        logger.info("DTMF number: %s", number)
        if call_session is None:
            logger.error("No call session for media session %s", session.session_id)
            return
        if number == DTMFKey.KEY_0:
            self._replay_guide(call_session)
        elif DTMFKey.KEY_1 <= number <= DTMFKey.KEY_5:
            self._make_refer(f"agent{number}", call_session)
        else:
            self._invalid_choice(call_session)

    def _make_refer(self, agent_id, call_session):
        logger.info("Making refer to agent: %s", agent_id)
        app = self._app
        host = app.server_ip
        number = call_session.src.number
        refer = SipMessage()
        refer.header = f"REFER sip:{number}@{host} SIP/2.0"
        refer.via = f"SIP/2.0/UDP {host}:{app.server_port}"
        refer.to = f"{number}<sip:{number}@{host}>;tag={call_session.from_tag}"
        refer.from_header = f"<sip:{IVR_ACCOUNT_NAME}@{host}>;tag={app.app_tag}"
        refer.call_id = call_session.call_id
        refer.cseq = "1 REFER"
        refer.refer_to = f"<sip:{agent_id}@{host}>"
        refer.referred_by = f"<sip:{IVR_ACCOUNT_NAME}@{host}>"
        refer.contact = f"<sip:{IVR_ACCOUNT_NAME}@{app.app_ip}:{app.app_port}>"
        app.send_to_server(refer)

    def _play(self, media_session, name):
        media_session.pb_source_file = self._media_file(name)
        self._media.update_media_session(media_session)

    def _replay_guide(self, call_session):
        media_session = call_session.media_session
        if media_session is None:
            logger.error("MediaSession not found")
            return
        self._play(media_session, "welcome.wav")

    def _invalid_choice(self, call_session):
        media_session = call_session.media_session
        if media_session is None:
            logger.error("MediaSession not found")
            return
        self._play(media_session, "selection_unavailable.wav")
        self._sleep(INVALID_CHOICE_DELAY)
        self._play(media_session, "welcome.wav")