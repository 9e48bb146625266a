import pytest

from clack.common.cipher import CipherKind, CipherSettings
from clack.common.errors import AuthenticationError
from clack.common.messages import (FileMessage, HelpMessage, ListUsersMessage, LoginMessage, MsgType,
                                   LogoutMessage, OptionEnum, OptionMessage, TextMessage)
from clack.common.protocol import LOGIN_OK
from clack.server.files import FileStore
from clack.server.session import (GOOD_BYE, GREETING, HELP_TEXT, Fatal, Ok, Phase, Recoverable,
                                  Session, SessionHandler, check_password)
from clack.server.state import UserDirectory


@pytest.fixture
def handler(tmp_path):
    return SessionHandler("server", UserDirectory(), FileStore(tmp_path / "staging"))


def logged_in(handler, name="alice"):
    session = Session(peer=("127.0.0.1", 5000))
    result = handler.dispatch(session, LoginMessage(name, name[::-1]))
    assert isinstance(result, Ok)
    return session


def test_greeting(handler):
    msg = handler.greeting()
    assert isinstance(msg, TextMessage)
    assert msg.text == GREETING
    assert msg.username == "server"


def test_every_kind_has_an_active_handler(handler):
    assert set(handler._active) == set(MsgType)


def test_check_password():
    check_password("alice", "ecila")
    with pytest.raises(AuthenticationError):
        check_password("alice", "alice")


def test_login_success(handler):
    session = Session()
    result = handler.dispatch(session, LoginMessage("alice", "ecila"))
    assert isinstance(result, Ok)
    assert result.reply.text == LOGIN_OK
    assert session.phase is Phase.ACTIVE
    assert session.current_user == "alice"
    assert "alice" in handler.users


def test_login_failure_stays_awaiting(handler):
    session = Session()
    result = handler.dispatch(session, LoginMessage("alice", "alice"))
    assert isinstance(result, Recoverable)
    assert isinstance(result.reply, TextMessage)
    assert session.phase is Phase.AWAITING_LOGIN
    assert session.current_user is None
    # a second attempt is allowed
    assert isinstance(handler.dispatch(session, LoginMessage("alice", "ecila")), Ok)


def test_commands_before_login(handler):
    session = Session()
    result = handler.dispatch(session, TextMessage("client", "hello"))
    assert isinstance(result, Recoverable)
    assert session.phase is Phase.AWAITING_LOGIN
    help_result = handler.dispatch(session, HelpMessage("client"))
    assert isinstance(help_result, Ok) and help_result.reply.text == HELP_TEXT


def test_logout_before_login_closes(handler):
    session = Session()
    result = handler.dispatch(session, LogoutMessage("client"))
    assert isinstance(result, Ok) and result.reply.text == GOOD_BYE
    assert session.phase is Phase.CLOSED


def test_text_plain(handler):
    session = logged_in(handler)
    result = handler.dispatch(session, TextMessage("alice", "Hi there"))
    assert isinstance(result, Ok)
    assert result.reply.text == "TEXT: 'Hi there'"


def test_text_decrypted_with_session_cipher(handler):
    session = logged_in(handler)
    session.cipher = CipherSettings(key="EDGARALLANPOE", name=CipherKind.VIGENERE, enabled=True)
    result = handler.dispatch(session, TextMessage("alice", "XKKGFLOMUT"))
    assert isinstance(result, Ok)
    assert result.reply.text == "TEXT (decrypted): 'THEGOLDBUG'"


@pytest.mark.parametrize("settings,text", [
    (CipherSettings(name=CipherKind.CAESAR, enabled=True), "ABC"),
    (CipherSettings(key="K3Y", name=CipherKind.VIGENERE, enabled=True), "ABC"),
    (CipherSettings(key="KEY", name=CipherKind.PLAYFAIR, enabled=True), "ABC"),
    (CipherSettings(key="3", name=CipherKind.CAESAR, enabled=True), "not ciphertext"),
])
def test_text_cipher_problems_are_recoverable(handler, settings, text):
    session = logged_in(handler)
    session.cipher = settings
    result = handler.dispatch(session, TextMessage("alice", text))
    assert isinstance(result, Recoverable)
    assert session.phase is Phase.ACTIVE


def test_option_updates_only_its_field(handler):
    session = logged_in(handler)
    session.cipher = CipherSettings(key="OLD", name=CipherKind.CAESAR, enabled=False)

    result = handler.dispatch(session, OptionMessage("alice", OptionEnum.CIPHER_KEY, "NEW"))
    assert isinstance(result, Ok)
    assert result.reply == OptionMessage("server", OptionEnum.CIPHER_KEY, "NEW",
                                         timestamp=result.reply.timestamp)
    assert session.cipher == CipherSettings(key="NEW", name=CipherKind.CAESAR, enabled=False)

    result = handler.dispatch(session, OptionMessage("alice", OptionEnum.CIPHER_NAME, "playfair"))
    assert result.reply.value == "PLAYFAIR"
    assert session.cipher == CipherSettings(key="NEW", name=CipherKind.PLAYFAIR, enabled=False)

    result = handler.dispatch(session, OptionMessage("alice", OptionEnum.CIPHER_ENABLE, "yes"))
    assert result.reply.value == "true"
    assert session.cipher == CipherSettings(key="NEW", name=CipherKind.PLAYFAIR, enabled=True)


def test_malformed_option_changes_nothing(handler):
    session = logged_in(handler)
    before = CipherSettings(key="KEY", name=CipherKind.CAESAR, enabled=True)
    session.cipher = CipherSettings(key="KEY", name=CipherKind.CAESAR, enabled=True)
    result = handler.dispatch(session, OptionMessage("alice", OptionEnum.CIPHER_NAME, "enigma"))
    assert isinstance(result, Recoverable)
    assert session.cipher == before


def test_sessions_do_not_share_cipher_settings(handler):
    a = logged_in(handler, "alice")
    b = logged_in(handler, "bob")
    handler.dispatch(a, OptionMessage("alice", OptionEnum.CIPHER_ENABLE, "on"))
    assert a.cipher.enabled is True
    assert b.cipher.enabled is False


def test_file_is_staged(handler, tmp_path):
    session = logged_in(handler)
    result = handler.dispatch(session, FileMessage("alice", "notes.txt", "hello\n"))
    assert isinstance(result, Ok)
    assert (tmp_path / "staging" / "notes.txt").read_text(encoding="utf-8") == "hello\n"


def test_file_failure_is_recoverable(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    handler = SessionHandler("server", UserDirectory(), FileStore(blocker))
    session = logged_in(handler)
    result = handler.dispatch(session, FileMessage("alice", "notes.txt", "hello"))
    assert isinstance(result, Recoverable)
    assert session.phase is Phase.ACTIVE


def test_listusers_reports_logged_in_users(handler):
    session = logged_in(handler, "bob")
    logged_in(handler, "alice")
    result = handler.dispatch(session, ListUsersMessage("bob"))
    assert result.reply.text == "Users: alice, bob"


def test_help(handler):
    session = logged_in(handler)
    assert handler.dispatch(session, HelpMessage("alice")).reply.text == HELP_TEXT


def test_relogin_is_refused(handler):
    session = logged_in(handler)
    result = handler.dispatch(session, LoginMessage("bob", "bob"))
    assert isinstance(result, Recoverable)
    assert session.current_user == "alice"


def test_logout_closes_and_unregisters(handler):
    session = logged_in(handler)
    result = handler.dispatch(session, LogoutMessage("alice"))
    assert isinstance(result, Ok)
    assert result.reply.text == GOOD_BYE
    assert session.phase is Phase.CLOSED
    assert "alice" not in handler.users
    assert isinstance(handler.dispatch(session, HelpMessage("alice")), Fatal)


def test_end_is_idempotent(handler):
    session = logged_in(handler)
    handler.end(session)
    handler.end(session)
    assert session.phase is Phase.CLOSED
    assert handler.users.users() == []


def test_user_directory_counts_sessions():
    users = UserDirectory()
    users.add("alice")
    users.add("alice")
    users.remove("alice")
    assert users.users() == ["alice"]
    users.remove("alice")
    assert users.users() == []
    users.remove("nobody")

