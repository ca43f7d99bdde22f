# ivrsip

An automated telephone menu that sits on a SIP server as the account
`mvnivr`. It answers incoming calls, has a separate media server play
prompts to the caller, polls that server for DTMF key presses and
transfers callers to agents with a SIP `REFER`.

## What it does

- Registers with the SIP server over UDP and repeats the `REGISTER` every
  60 seconds.
- Answers an `INVITE` that carries an SDP body with `200 OK` and an SDP
  answer pointing the caller's audio at the application's RTP address and
  port. A media session is created on the media server first; if that
  fails, the call is dropped from the session table and not answered.
- When the `ACK` arrives it plays `welcome.wav` and starts polling the
  media server for key presses every 100 ms:
  - `0` plays the welcome prompt again;
  - `1` to `5` send a `REFER` moving the caller to `agent1` … `agent5`;
  - any other key plays `selection_unavailable.wav`, waits 5 seconds,
    then plays the welcome prompt again.
- When a transfer is accepted (`202 Accepted`) it plays `redirecting.wav`,
  waits 5 seconds, then plays `phone_holding_music.wav`.
- On `480 Temporarily Unavailable` it plays `agent_busy.wav`, waits
  7 seconds and hangs up with a `BYE`.
- On `BYE`, or on a `200 OK` whose CSeq is for a `BYE`, it answers
  `200 OK`, stops DTMF polling and playback, and removes the call and its
  media session.
- `CANCEL`, `100 Trying`, `180 Ringing`, `486 Busy Here` and
  `487 Request Terminated` are accepted and ignored; datagrams that are not
  valid SIP messages are dropped.

## Requirements

- Python 3.10 or later; no third-party libraries.
- A media server reachable over TCP, by default at `127.0.0.1:9999`, that
  answers the JSON requests sent by `ivrsip.media_client.MediaClient`
  (`init_session`, `start_session`, `stop_session`, `close_session`,
  `update_session`, `get_dtmf_event`), one request per connection.
- A directory of prompt files named by the `MEDIA_DIR` environment
  variable, holding the `.wav` files listed above. A prompt whose file does
  not exist is logged and not played.

## Installation

```
pip install .
```

## Running

```
MEDIA_DIR=/path/to/prompts ivrsip --server-ip 192.0.2.10 --app-ip 192.0.2.20
```

| Option | Meaning | Default |
| --- | --- | --- |
| `-i`, `--server-ip` | SIP server address | required |
| `-p`, `--server-port` | SIP server port | `5060` |
| `-c`, `--app-ip` | address the IVR advertises for RTP | required |
| `-m`, `--app-port` | port the IVR advertises for RTP | `10000` |
| `-h`, `--help` | print usage | |

Without `--server-ip` or `--app-ip` the command prints
`Please enter ip and port.` and exits with status 1. Otherwise it logs at
INFO level and runs until a line (or end of file) is read from standard
input.

## Using it as a library

```python
from ivrsip.factory import create_message

message = create_message(datagram_text)
if message is not None:
    print(message.type, message.call_id, message.from_number)
```

- `ivrsip.sip_message`: `SipMessage` parses and renders SIP messages,
  `SipSdpMessage` those with an SDP body; `SipMessageError` is raised for
  unparsable or incomplete text; `ipv4_to_address` validates an address.
- `ivrsip.factory`: `create_message` picks the right class, or returns
  `None`.
- `ivrsip.call_session`: `SipClient`, `CallState`, `CallSession`,
  `SessionManager` and the shared `get_session_manager()`.
- `ivrsip.call_details`: `CallDetails`, a lock-guarded record of a call's
  id, URIs and `CallStatus`.
- `ivrsip.udp_client`: `UdpClient`, a UDP sender with a background
  receiver thread; usable as a context manager.
- `ivrsip.media_session`: `MediaSession` and the `MediaSessionCallback`
  interface for DTMF events.
- `ivrsip.media_client`: `MediaClient`, `MediaRequest`, `MediaResponse`
  and `MediaClientError`.
- `ivrsip.media_manager`: `MediaManager` and the shared
  `get_media_manager()`.
- `ivrsip.dtmf`: `DTMFHandler`, the menu logic, and the `DTMFKey` enum.
- `ivrsip.idgen`: `generate_id` and `generate_branch`.
- `ivrsip.application`: `Application` ties them together; its transport,
  session manager, media manager, prompt directory and sleep function can
  be supplied, which makes it testable without a network. `build_parser`
  and `main` make up the command.

## What it does not do

- It does not handle audio itself: RTP streaming, prompt playback and DTMF
  detection are left to the external media server.
- It does not answer authentication challenges; `REGISTER` is sent without
  credentials.
- It speaks SIP over UDP only, and only the message types listed above.

## Running the tests

```
pip install .[test]
pytest
```