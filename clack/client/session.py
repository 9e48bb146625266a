"""
Client-side state machine.

    CONNECTING -> AWAITING_LOGIN -> ACTIVE -> CLOSED

ClientSession does no I/O of its own. It turns a line typed by the user into
the next Message to send, and turns a reply from the server into the text to
show, updating its phase and mirrored cipher settings along the way.
"""
from enum import Enum
from typing import Optional

import emoji

from ..common.cipher import CipherSettings
from ..common.errors import CipherError, ProtocolError
from ..common.messages import (FileMessage, HelpMessage, ListUsersMessage, LoginMessage,
                               LogoutMessage, Message, OptionEnum, OptionMessage, TextMessage)
from ..common.protocol import LOGIN_OK, encode

OPTION_NAMES = {
    "KEY": OptionEnum.CIPHER_KEY,
    "NAME": OptionEnum.CIPHER_NAME,
    "ENABLE": OptionEnum.CIPHER_ENABLE,
}

LOGIN_USAGE = "Log in with: <username> <password>  (or HELP, LOGOUT)"


class ClientPhase(str, Enum):
    CONNECTING = "CONNECTING"
    AWAITING_LOGIN = "AWAITING_LOGIN"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class CommandError(Exception):
    """Raised when a typed line cannot be turned into a message. Nothing is sent."""
    pass


class ClientSession:
    def __init__(self, username: str):
        self.username = username
        self.phase = ClientPhase.CONNECTING
        self.cipher = CipherSettings()   # mirror of the server's settings, fed by OPTION echoes
        self.pending_login: Optional[str] = None

    def connected(self) -> None:
        self.phase = ClientPhase.AWAITING_LOGIN

    # --------- outgoing ----------
    def translate(self, line: str) -> Message:
        '''
        Turn one line of user input into the Message to send.
        Input:
            - line: raw text typed by the user
        Output: the Message for the current phase
        Raises CommandError if the line is not usable; the caller should prompt again.
        '''
        msg = self._translate(line)
        try:
            encode(msg)
        except ProtocolError as exc:
            raise CommandError(f"Not sent: {exc}") from exc
        return msg

    def _translate(self, line: str) -> Message:
        tokens = line.split()
        command = tokens[0].upper() if tokens else ""

        if command == "LOGOUT":
            return LogoutMessage(self.username)
        if command == "HELP":
            return HelpMessage(self.username)
        if self.phase is ClientPhase.AWAITING_LOGIN:
            return self._login(tokens[1:] if command == "LOGIN" else tokens)
        if command == "LOGIN":
            return self._login(tokens[1:])
        if command == "LISTUSERS":
            return ListUsersMessage(self.username)
        if command == "OPTION":
            return self._option(line)
        if command == "FILE":
            return self._file(tokens[1:])
        return self._text(line)

    def _login(self, args) -> LoginMessage:
        if len(args) != 2:
            raise CommandError(LOGIN_USAGE)
        self.pending_login = args[0]
        return LoginMessage(args[0], args[1])

    def _option(self, line: str) -> OptionMessage:
        # OPTION <key|name|enable> <value>; the value may contain spaces
        parts = line.split(None, 2)
        if len(parts) < 3:
            raise CommandError("Usage: OPTION <key|name|enable> <value>")
        option = OPTION_NAMES.get(parts[1].upper())
        if option is None:
            raise CommandError(f"Unknown option {parts[1]!r}; use key, name or enable")
        return OptionMessage(self.username, option, parts[2].strip())

    def _file(self, args) -> FileMessage:
        if not 1 <= len(args) <= 2:
            raise CommandError("Usage: FILE <path> [save-as]")
        try:
            return FileMessage.from_path(self.username, args[0], args[1] if len(args) > 1 else None)
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            raise CommandError(f"Cannot send {args[0]}: {exc}") from exc

    def _text(self, line: str) -> TextMessage:
        if not self.cipher.enabled:
            return TextMessage(self.username, emoji.emojize(line, language="alias"))
        try:
            cipher = self.cipher.build()
            return TextMessage(self.username, cipher.encrypt(cipher.prepare(line)))
        except CipherError as exc:
            raise CommandError(f"Encryption is on but unusable: {exc}") from exc

    # --------- incoming ----------
    def render(self, msg: Message) -> str:
        ''' Return the text to show for a server message, updating phase and cipher mirror '''
        if isinstance(msg, TextMessage):
            if self.phase is ClientPhase.AWAITING_LOGIN and self.pending_login is not None:
                if msg.text == LOGIN_OK:
                    self.username = self.pending_login
                    self.phase = ClientPhase.ACTIVE
                self.pending_login = None
            return msg.text
        if isinstance(msg, OptionMessage):
            self.cipher.apply(msg.option, msg.value)
            return f"[{msg.option.value} set to '{msg.value}']"
        return f"Unexpected message from server: {msg!r}"

    def closed(self) -> None:
        self.phase = ClientPhase.CLOSED
