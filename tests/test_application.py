import time
from types import SimpleNamespace

import pytest

from ivrsip.application import Application, build_parser, main
from ivrsip.call_session import CallState, SessionManager
from ivrsip.media_manager import MediaManager

SERVER_IP = "10.0.0.1"
APP_IP = "192.168.1.20"
CALL_ID = "a84b4c76e66710"
WAVS = (
    "welcome.wav",
    "agent_busy.wav",
    "redirecting.wav",
    "phone_holding_music.wav",
    "selection_unavailable.wav",
)


class FakeTransport:
    def __init__(self):
        self.sent = []
        self.started = False
        self.closed = False

    def send(self, payload):
        self.sent.append(payload)
        return len(payload)

    def start_receive(self):
        self.started = True

    def close(self):
        self.closed = True


class FakeMediaClient:
    def __init__(self, ok=True, dtmf=()):
        self.ok = ok
        self.calls = []
        self._dtmf = list(dtmf)

    def init_session(self, session):
        self.calls.append(("init", session.pb_source_file))
        if self.ok:
            session.session_id = "media-1"
        return self.ok

    def start_session(self, session):
        self.calls.append(("start", session.pb_source_file))
        return True

    def stop_session(self, session):
        self.calls.append(("stop", session.pb_source_file))
        return True

    def close_session(self, session):
        self.calls.append(("close", session.pb_source_file))
        return True

    def update_session(self, session):
        self.calls.append(("update", session.pb_source_file))
        return True

    def read_dtmf(self, session):
        if self._dtmf:
            return self._dtmf.pop(0)
        return ""


def sip(first_line, cseq, extra=(), call_id=CALL_ID):
    lines = [
        first_line,
        "Via: SIP/2.0/UDP 192.168.1.50:5060;branch=z9hG4bK-test",
        f"From: <sip:1001@{SERVER_IP}>;tag=abc123",
        f"To: <sip:mvnivr@{SERVER_IP}>;tag=ivrtag",
        f"Call-ID: {call_id}",
        f"CSeq: {cseq}",
        *extra,
        "Content-Length: 0",
    ]
    return "\r\n".join(lines) + "\r\n\r\n"


SDP = (
    "v=0\r\n"
    "o=- 0 0 IN IP4 192.168.1.50\r\n"
    "s=-\r\n"
    "c=IN IP4 192.168.1.50\r\n"
    "t=0 0\r\n"
    "m=audio 40000 RTP/AVP 0 101\r\n"
    "a=rtpmap:0 PCMU/8000\r\n"
    "a=rtpmap:101 telephone-event/8000\r\n"
)

INVITE = (
    sip(
        f"INVITE sip:mvnivr@{SERVER_IP} SIP/2.0",
        "1 INVITE",
        extra=["Contact: <sip:1001@192.168.1.50:5060>", "Content-Type: application/sdp"],
    )
    + SDP
)
ACK = sip(f"ACK sip:mvnivr@{SERVER_IP} SIP/2.0", "1 ACK")
BYE = sip(f"BYE sip:mvnivr@{SERVER_IP} SIP/2.0", "2 BYE")
SOURCE = ("192.168.1.50", 5060)


def wait_for(predicate, timeout=3.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture
def media_dir(tmp_path):
    for name in WAVS:
        (tmp_path / name).write_bytes(b"RIFF")
    return tmp_path


def make_app(media_dir, client=None):
    client = client if client is not None else FakeMediaClient()
    transport = FakeTransport()
    sessions = SessionManager()
    manager = MediaManager(client)
    sleeps = []
    app = Application(
        SERVER_IP,
        5060,
        APP_IP,
        10000,
        transport=transport,
        sessions=sessions,
        media=manager,
        media_dir=media_dir,
        sleep=sleeps.append,
    )
    return SimpleNamespace(
        app=app, transport=transport, sessions=sessions, manager=manager,
        client=client, sleeps=sleeps,
    )


def test_invite_creates_session_and_answers(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)

    call = env.sessions.get_session(CALL_ID)
    assert call.state is CallState.CONNECTED
    assert call.src.number == "1001"
    assert call.from_tag == "abc123"
    assert call.media_session.remote_host == "192.168.1.50"
    assert call.media_session.remote_port == 40000
    assert call.media_session in env.manager

    assert len(env.transport.sent) == 1
    answer = env.transport.sent[0]
    assert answer.startswith("SIP/2.0 200 OK\r\n")
    assert f"To: mvnivr<sip:mvnivr@{SERVER_IP}>;tag={env.app.app_tag}\r\n" in answer
    assert f"Contact: <sip:mvnivr@{SERVER_IP}:5060>\r\n" in answer
    assert f"c=IN IP4 {APP_IP}\r\n" in answer
    assert "m=audio 10000 RTP/AVP" in answer
    assert "Content-Type: application/sdp\r\n" in answer


def test_duplicate_invite_is_ignored(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(INVITE, SOURCE)
    assert len(env.transport.sent) == 1
    assert len(env.sessions) == 1


def test_invite_without_media_removes_session(media_dir):
    env = make_app(media_dir, FakeMediaClient(ok=False))
    env.app.handle_datagram(INVITE, SOURCE)
    assert env.sessions.get_session(CALL_ID) is None
    assert env.transport.sent == []


def test_ack_starts_playback_of_welcome(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(ACK, SOURCE)
    media_session = env.sessions.get_session(CALL_ID).media_session
    try:
        assert media_session.pb_source_file == str(media_dir / "welcome.wav")
        assert ("start", str(media_dir / "welcome.wav")) in env.client.calls
        assert media_session.reading_dtmf
    finally:
        media_session.stop_read_dtmf()


def test_dtmf_key_sends_refer(media_dir):
    env = make_app(media_dir, FakeMediaClient(dtmf=["1"]))
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(ACK, SOURCE)
    media_session = env.sessions.get_session(CALL_ID).media_session
    try:
        assert wait_for(lambda: any(p.startswith("REFER") for p in env.transport.sent))
        refer = next(p for p in env.transport.sent if p.startswith("REFER"))
        assert f"Refer-To: <sip:agent1@{SERVER_IP}>\r\n" in refer
        assert "CSeq: 1 REFER\r\n" in refer
    finally:
        media_session.stop_read_dtmf()


def test_bye_answers_and_tears_down(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(ACK, SOURCE)
    env.app.handle_datagram(BYE, SOURCE)

    assert env.transport.sent[-1].startswith("SIP/2.0 200 OK\r\n")
    assert env.sessions.get_session(CALL_ID) is None
    assert len(env.manager) == 0
    kinds = [kind for kind, _ in env.client.calls]
    assert kinds.index("stop") < kinds.index("close")


def test_bye_for_unknown_call_sends_nothing(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(BYE, SOURCE)
    assert env.transport.sent == []


def test_ok_for_register_changes_nothing(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(sip("SIP/2.0 200 OK", "1 REGISTER"), SOURCE)
    assert len(env.transport.sent) == 1
    assert env.sessions.get_session(CALL_ID).state is CallState.CONNECTED


def test_ok_for_bye_ends_call(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(sip("SIP/2.0 200 OK", "2 BYE"), SOURCE)
    assert env.sessions.get_session(CALL_ID) is None
    assert len(env.manager) == 0


def test_unavailable_plays_busy_and_sends_bye(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(sip("SIP/2.0 480 Temporarily Unavailable", "1 REFER"), SOURCE)

    assert env.sleeps == [7]
    assert ("update", str(media_dir / "agent_busy.wav")) in env.client.calls
    bye = env.transport.sent[-1]
    assert bye.startswith(f"BYE sip:1001@{SERVER_IP}:5060 SIP/2.0\r\n")
    assert f"To: <sip:1001@{SERVER_IP}>;tag=abc123\r\n" in bye
    assert f"Via: SIP/2.0/UDP {APP_IP}:10000;branch=z9hG4bK-" in bye
    assert "CSeq: 2 BYE\r\n" in bye
    assert bye.endswith("Content-Length: 0\r\n\r\n")


def test_refer_accepted_plays_redirect_then_music(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram(INVITE, SOURCE)
    env.app.handle_datagram(sip("SIP/2.0 202 Accepted", "1 REFER"), SOURCE)

    assert env.sleeps == [5]
    updates = [path for kind, path in env.client.calls if kind == "update"]
    assert updates == [
        str(media_dir / "redirecting.wav"),
        str(media_dir / "phone_holding_music.wav"),
    ]


def test_garbage_is_ignored(media_dir):
    env = make_app(media_dir)
    env.app.handle_datagram("hello\r\nworld\r\n", SOURCE)
    assert env.transport.sent == []
    assert len(env.sessions) == 0


def test_register_message(media_dir):
    env = make_app(media_dir)
    message = env.app.register()
    payload = env.transport.sent[0]
    assert payload.startswith(f"REGISTER sip:{SERVER_IP} SIP/2.0\r\n")
    assert "CSeq: 1 REGISTER\r\n" in payload
    assert f"Contact: <sip:mvnivr@{SERVER_IP}:5060>\r\n" in payload
    assert message.from_header.endswith(f";tag={env.app.app_tag}")
    assert len(message.call_id) == 9


def test_app_tag_is_stable_and_shared(media_dir):
    first = make_app(media_dir).app
    second = make_app(media_dir).app
    assert first.app_tag == second.app_tag
    assert len(first.app_tag) == 9
    assert first.app_tag.isalnum()


def test_start_registers_and_close_stops(media_dir):
    env = make_app(media_dir)
    env.app.start()
    try:
        assert wait_for(lambda: env.transport.sent)
        assert env.transport.started
        assert env.transport.sent[0].startswith(f"REGISTER sip:{SERVER_IP} SIP/2.0")
    finally:
        env.app.close()
    assert env.transport.closed
    with pytest.raises(RuntimeError):
        env.app.start()


def test_parser_defaults():
    args = build_parser().parse_args(["-i", SERVER_IP, "-c", APP_IP])
    assert args.server_ip == SERVER_IP
    assert args.app_ip == APP_IP
    assert args.server_port == 5060
    assert args.app_port == 10000


def test_parser_long_options():
    args = build_parser().parse_args(
        ["--server-ip", SERVER_IP, "--server-port", "5070", "--app-ip", APP_IP, "--app-port", "12000"]
    )
    assert (args.server_port, args.app_port) == (5070, 12000)


def test_main_without_addresses_fails(capsys):
    assert main(["-i", SERVER_IP]) == 1
    assert "Please enter ip and port." in capsys.readouterr().err


def test_main_help_exits_zero():
    with pytest.raises(SystemExit) as excinfo:
        main(["--help"])
    assert excinfo.value.code == 0