"""Building SIP message objects from received datagram text."""

import logging

from .constants import SDP_CONTENT_TYPE
from .sip_message import SipMessage, SipSdpMessage

logger = logging.getLogger(__name__)


def create_message(data):
    """Parse ``data`` into a message object.

    Text that carries an SDP body becomes a SipSdpMessage, anything else a
    SipMessage. Returns None when the text is not a valid SIP message.
    """
    try:
        if SDP_CONTENT_TYPE in data:
            return SipSdpMessage(data)
        return SipMessage(data)
    except ValueError as exc:
        logger.debug("Dropping unparsable message: %s", exc)
        return None