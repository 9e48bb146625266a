"""
Per-connection server state machine.

    AWAITING_LOGIN --login ok--> ACTIVE --logout--> CLOSED

dispatch() never raises for expected negative outcomes. It returns one of
Ok / Recoverable / Fatal and the connection loop decides whether to keep
going. A Session object is owned by exactly one connection thread; the only
state shared between sessions is the UserDirectory and the FileStore.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from ..common.cipher import CipherSettings
from ..common.errors import AuthenticationError, CipherError
from ..common.messages import (FileMessage, HelpMessage, ListUsersMessage, LoginMessage,
                               LogoutMessage, Message, MsgType, OptionEnum, OptionMessage,
                               TextMessage)
from ..common.protocol import LOGIN_OK
from .files import FileStore
from .state import UserDirectory

logger = logging.getLogger(__name__)

GREETING = "[Server listening. 'Logout' (case insensitive) closes connection.]"
GOOD_BYE = "[Closing connection, good-bye.]"
HELP_TEXT = "\n".join([
    "Commands (case insensitive):",
    "  LOGIN <user> <password>   log in (password is the username reversed)",
    "  HELP                      show this summary",
    "  LISTUSERS                 list logged-in users",
    "  OPTION key <value>        set the cipher key",
    "  OPTION name <cipher>      choose CAESAR, VIGENERE or PLAYFAIR",
    "  OPTION enable <on|off>    turn text encryption on or off",
    "  FILE <path> [save-as]     upload a text file to the server",
    "  LOGOUT                    close the connection",
    "Anything else is sent as a text message.",
])


class Phase(str, Enum):
    AWAITING_LOGIN = "AWAITING_LOGIN"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


@dataclass
class Session:
    """Mutable state of one connection. Never shared between threads."""
    peer: Tuple = ()
    phase: Phase = Phase.AWAITING_LOGIN
    current_user: Optional[str] = None
    cipher: CipherSettings = field(default_factory=CipherSettings)


@dataclass(frozen=True)
class Ok:
    reply: Message


@dataclass(frozen=True)
class Recoverable:
    reply: Message


@dataclass(frozen=True)
class Fatal:
    cause: Exception


Result = Union[Ok, Recoverable, Fatal]


def check_password(username: str, password: str) -> None:
    ''' Toy credential rule: the password is the username spelled backwards '''
    if password != username[::-1]:
        raise AuthenticationError(f"bad password for {username!r}")


class SessionHandler:
    """
    Dispatches messages for sessions. Holds only the shared, thread-safe
    collaborators; all per-connection state comes in through the Session.
    """

    def __init__(self, server_name: str = "server",
                 users: Optional[UserDirectory] = None,
                 files: Optional[FileStore] = None):
        self.server_name = server_name
        self.users = users if users is not None else UserDirectory()
        self.files = files if files is not None else FileStore()
        self._active: Dict[MsgType, Callable[[Session, Message], Result]] = {
            MsgType.TEXT: self._on_text,
            MsgType.FILE: self._on_file,
            MsgType.LOGIN: self._on_relogin,
            MsgType.LOGOUT: self._on_logout,
            MsgType.LISTUSERS: self._on_listusers,
            MsgType.HELP: self._on_help,
            MsgType.OPTION: self._on_option,
        }
        if set(self._active) != set(MsgType):
            raise RuntimeError("no ACTIVE handler for some message kinds")

    def text(self, text: str) -> TextMessage:
        return TextMessage(self.server_name, text)

    def greeting(self) -> TextMessage:
        return self.text(GREETING)

    def dispatch(self, session: Session, msg: Message) -> Result:
        ''' Handle one inbound message according to the session's phase '''
        if session.phase is Phase.CLOSED:
            return Fatal(RuntimeError("message received on a closed session"))
        if session.phase is Phase.AWAITING_LOGIN:
            return self._awaiting_login(session, msg)
        return self._active[msg.kind](session, msg)

    def end(self, session: Session) -> None:
        ''' Release shared resources held by session; safe to call more than once '''
        if session.current_user is not None:
            self.users.remove(session.current_user)
            session.current_user = None
        session.phase = Phase.CLOSED

    # ---- AWAITING_LOGIN ----
    def _awaiting_login(self, session: Session, msg: Message) -> Result:
        if isinstance(msg, LoginMessage):
            try:
                check_password(msg.username, msg.password)
            except AuthenticationError as exc:
                logger.warning("Login rejected from %s: %s", session.peer, exc)
                return Recoverable(self.text("Login failed: username/password mismatch. Try again."))
            session.current_user = msg.username
            session.phase = Phase.ACTIVE
            self.users.add(msg.username)
            logger.info("%s logged in from %s", msg.username, session.peer)
            return Ok(self.text(LOGIN_OK))
        if isinstance(msg, HelpMessage):
            return self._on_help(session, msg)
        if isinstance(msg, LogoutMessage):
            return self._on_logout(session, msg)
        return Recoverable(self.text("Please log in first: <username> <password>"))

    # ---- ACTIVE ----
    def _on_text(self, session: Session, msg: TextMessage) -> Result:
        if not session.cipher.enabled:
            return Ok(self.text(f"TEXT: '{msg.text}'"))
        try:
            plain = session.cipher.build().decrypt(msg.text)
        except CipherError as exc:
            return Recoverable(self.text(f"Cannot decrypt text: {exc}"))
        return Ok(self.text(f"TEXT (decrypted): '{plain}'"))

    def _on_file(self, session: Session, msg: FileMessage) -> Result:
        try:
            path = self.files.store(msg.file_name, msg.file_contents)
        except (OSError, ValueError) as exc:
            logger.warning("Saving %r for %s failed: %s", msg.file_name, session.current_user, exc)
            return Recoverable(self.text(f"Could not save file '{msg.file_name}': {exc}"))
        return Ok(self.text(f"File '{msg.file_name}' saved ({path.stat().st_size} bytes)."))

    def _on_relogin(self, session: Session, msg: LoginMessage) -> Result:
        return Recoverable(self.text(f"Already logged in as {session.current_user}."))

    def _on_logout(self, session: Session, msg: LogoutMessage) -> Result:
        self.end(session)
        return Ok(self.text(GOOD_BYE))

    def _on_listusers(self, session: Session, msg: ListUsersMessage) -> Result:
        return Ok(self.text("Users: " + ", ".join(self.users.users())))

    def _on_help(self, session: Session, msg: HelpMessage) -> Result:
        return Ok(self.text(HELP_TEXT))

    def _on_option(self, session: Session, msg: OptionMessage) -> Result:
        try:
            session.cipher.apply(msg.option, msg.value)
        except ValueError as exc:
            return Recoverable(self.text(f"Bad value for {msg.option.value}: {exc}"))
        # echo the normalized value so the client mirrors exactly what is stored
        settings = session.cipher
        echoed = {OptionEnum.CIPHER_KEY: settings.key,
                  OptionEnum.CIPHER_NAME: settings.name.value if settings.name else "",
                  OptionEnum.CIPHER_ENABLE: "true" if settings.enabled else "false"}[msg.option]
        return Ok(OptionMessage(self.server_name, msg.option, echoed))
