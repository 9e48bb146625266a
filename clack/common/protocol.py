import datetime
import json
import socket
from typing import Any, Dict, Optional

from .errors import ProtocolError
from .messages import MESSAGE_TYPES, Message, MsgType

ENC = "utf-8"   # encoding for JSON text
DELIM = b"\n"    # delimiter for JSON text
MAX_RECORD_SIZE = 4 * 1024 * 1024  # 4 MiB, delimiter included

# Reply text the client watches for to leave AWAITING_LOGIN.
LOGIN_OK = "Login successful"


def encode(msg: Message) -> bytes:
    '''
    The function turns a Message into one wire record: a JSON object followed by \\n.
    The "type" field is the discriminator; "payload" holds the variant's own fields.
    Input:
        - msg: the Message to serialize
    Output:
        - bytes ready to be written to the socket
    '''
    env = {"type": msg.kind.value, "sender": msg.username,
           "ts": msg.timestamp.isoformat(timespec="microseconds"),
           "payload": msg.payload()}
    # json escapes embedded newlines, so DELIM only ever ends a record
    data = json.dumps(env, ensure_ascii=False).encode(ENC) + DELIM
    if len(data) > MAX_RECORD_SIZE:
        raise ProtocolError(f"record too large: {len(data)} > {MAX_RECORD_SIZE}")
    return data


def decode(data: bytes) -> Message:
    '''
    The function rebuilds a Message from one wire record produced by encode().
    Input:
        - data: exactly one record, including its trailing \\n
    Output:
        - the decoded Message
    Raises ProtocolError if the record is truncated, not JSON, or names an unknown type.
    '''
    if not data.endswith(DELIM):
        raise ProtocolError("truncated record (missing delimiter)")
    try:
        env = json.loads(data[:-len(DELIM)].decode(ENC))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ProtocolError(f"undecodable record: {exc}") from exc
    if not isinstance(env, dict):
        raise ProtocolError("record is not a JSON object")

    try:
        kind = MsgType(env.get("type"))
    except ValueError:
        raise ProtocolError(f"unknown message type: {env.get('type')!r}") from None
    cls = MESSAGE_TYPES[kind]

    payload = env.get("payload")
    if not isinstance(payload, dict):
        raise ProtocolError("payload must be a JSON object")
    try:
        timestamp = datetime.datetime.fromisoformat(env["ts"])
        return cls(env["sender"], **_fields(payload), timestamp=timestamp)
    except KeyError as exc:
        raise ProtocolError(f"{kind.value} record missing field {exc}") from None
    except (TypeError, ValueError) as exc:
        raise ProtocolError(f"invalid {kind.value} record: {exc}") from exc


def _fields(payload: Dict[str, Any]) -> Dict[str, Any]:
    ''' Payload values must all be strings; anything else means a foreign or corrupted peer '''
    for k, v in payload.items():
        if not isinstance(v, str):
            raise ProtocolError(f"payload field {k!r} must be a string")
    return payload


class MessageStream:
    '''
    One connected socket carrying Message records in both directions.
    Records are read in exactly the order the peer wrote them.
    '''

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._rfile = sock.makefile("rb")   # buffered reader so readline() can find DELIM

    def send(self, msg: Message) -> None:
        self.sock.sendall(encode(msg))

    def recv(self) -> Message:
        '''
        Block until one full record arrives and return it decoded.
        Raises ConnectionError if the peer closed the connection cleanly.
        '''
        line = self._rfile.readline(MAX_RECORD_SIZE + 1)
        if not line:
            raise ConnectionError("socket closed")
        if len(line) > MAX_RECORD_SIZE:
            raise ProtocolError(f"record exceeds {MAX_RECORD_SIZE} bytes")
        return decode(line)

    def close(self) -> None:
        try:
            self._rfile.close()
        finally:
            self.sock.close()

    def __enter__(self) -> "MessageStream":
        return self

    def __exit__(self, *exc_info) -> Optional[bool]:
        self.close()
        return None
