"""Protocol constants and application defaults."""

IVR_ACCOUNT_NAME = "mvnivr"
APP_USERAGENT = "MVN IVR"

SERVER_PORT_DEFAULT = 5060

MEDIA_SERVER_HOST_DEFAULT = "127.0.0.1"
MEDIA_SERVER_PORT_DEFAULT = 10000

HEADER_VIA = "Via"
HEADER_FROM = "From"
HEADER_TO = "To"
HEADER_CALL_ID = "Call-ID"
HEADER_CSEQ = "CSeq"
HEADER_CONTACT = "Contact"
HEADER_CONTENT_LENGTH = "Content-Length"
HEADER_CONTENT_TYPE = "Content-Type"
HEADER_REFER_TO = "Refer-To"
HEADER_REFERRED_BY = "Referred-By"

HEADERS_DELIMITER = "\r\n"

TYPE_REGISTER = "REGISTER"
TYPE_INVITE = "INVITE"
TYPE_CANCEL = "CANCEL"
TYPE_REQUEST_TERMINATED = "SIP/2.0 487 Request Terminated"
TYPE_TRYING = "SIP/2.0 100 Trying"
TYPE_RINGING = "SIP/2.0 180 Ringing"
TYPE_BUSY = "SIP/2.0 486 Busy Here"
TYPE_UNAVAILABLE = "SIP/2.0 480 Temporarily Unavailable"
TYPE_OK = "SIP/2.0 200 OK"
TYPE_REFER_ACCEPTED = "SIP/2.0 202 Accepted"
TYPE_ACK = "ACK"
TYPE_BYE = "BYE"
TYPE_REFER = "REFER"
TYPE_NOT_FOUND = "SIP/2.0 404 Not Found"

SDP_CONTENT_TYPE = "application/sdp"