"""
Message model shared by client and server.

Every message carries the same header (kind, timestamp, username). The kind
is a class attribute, so the concrete class decides which payload fields
exist. Messages are frozen: built once, sent once, never changed.
"""
import datetime
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePath
from typing import ClassVar, Dict, Type, Union


class MsgType(str, Enum):
    TEXT = "TEXT"
    FILE = "FILE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    LISTUSERS = "LISTUSERS"
    HELP = "HELP"
    OPTION = "OPTION"


class OptionEnum(str, Enum):
    CIPHER_KEY = "CIPHER_KEY"
    CIPHER_NAME = "CIPHER_NAME"
    CIPHER_ENABLE = "CIPHER_ENABLE"


_clock_lock = threading.Lock()
_last_ts = datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)


def now() -> datetime.datetime:
    '''
    Return the current UTC time, never earlier than the previous call.
    Sessions run on separate threads, so the high-water mark is kept under a lock.
    '''
    global _last_ts
    with _clock_lock:
        ts = datetime.datetime.now(datetime.timezone.utc)
        if ts < _last_ts:
            ts = _last_ts
        _last_ts = ts
        return ts


@dataclass(frozen=True)
class Message:
    kind: ClassVar[MsgType]

    username: str
    timestamp: datetime.datetime = field(default_factory=now, kw_only=True)

    def __post_init__(self):
        if not isinstance(self.username, str) or not self.username:
            raise ValueError("username must be a non-empty string")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")

    def payload(self) -> Dict[str, str]:
        ''' Variant fields as a plain dict (used by the codec) '''
        return {}


@dataclass(frozen=True)
class TextMessage(Message):
    kind: ClassVar[MsgType] = MsgType.TEXT

    text: str

    def payload(self):
        return {"text": self.text}


@dataclass(frozen=True)
class FileMessage(Message):
    kind: ClassVar[MsgType] = MsgType.FILE

    file_name: str
    file_contents: str

    def __post_init__(self):
        super().__post_init__()
        # Only a bare name is sent; the receiver decides the directory.
        if not self.file_name or PurePath(self.file_name).name != self.file_name \
                or "/" in self.file_name or "\\" in self.file_name \
                or self.file_name in (".", ".."):
            raise ValueError(f"file name must not contain path components: {self.file_name!r}")

    @classmethod
    def from_path(cls, username: str, path, save_as=None) -> "FileMessage":
        '''
        Read a local text file into a new FileMessage.
        Inputs:
            - username: sender of the message
            - path: file to read
            - save_as: optional path whose name part is used by the receiver
        Raises OSError if the file cannot be read.
        '''
        path = Path(path)
        name = PurePath(save_as).name if save_as else path.name
        contents = path.read_text(encoding="utf-8")
        return cls(username, name, contents)

    def write_to(self, directory) -> Path:
        ''' Write the contents to <directory>/<file_name> and return the path '''
        target = Path(directory) / self.file_name
        target.write_text(self.file_contents, encoding="utf-8")
        return target

    def payload(self):
        return {"file_name": self.file_name, "file_contents": self.file_contents}


@dataclass(frozen=True)
class LoginMessage(Message):
    kind: ClassVar[MsgType] = MsgType.LOGIN

    password: str = field(repr=False)

    def payload(self):
        return {"password": self.password}


@dataclass(frozen=True)
class LogoutMessage(Message):
    kind: ClassVar[MsgType] = MsgType.LOGOUT


@dataclass(frozen=True)
class ListUsersMessage(Message):
    kind: ClassVar[MsgType] = MsgType.LISTUSERS


@dataclass(frozen=True)
class HelpMessage(Message):
    kind: ClassVar[MsgType] = MsgType.HELP


@dataclass(frozen=True)
class OptionMessage(Message):
    kind: ClassVar[MsgType] = MsgType.OPTION

    option: OptionEnum
    value: str

    def __post_init__(self):
        super().__post_init__()
        # Accept the enum name as a string too; store the enum member.
        object.__setattr__(self, "option", OptionEnum(self.option))

    def payload(self):
        return {"option": self.option.value, "value": self.value}


AnyMessage = Union[TextMessage, FileMessage, LoginMessage, LogoutMessage,
                   ListUsersMessage, HelpMessage, OptionMessage]

# Discriminator -> concrete class. Every MsgType has exactly one entry.
MESSAGE_TYPES: Dict[MsgType, Type[Message]] = {
    cls.kind: cls
    for cls in (TextMessage, FileMessage, LoginMessage, LogoutMessage,
                ListUsersMessage, HelpMessage, OptionMessage)
}
if set(MESSAGE_TYPES) != set(MsgType):
    raise RuntimeError("MESSAGE_TYPES does not cover every MsgType")
