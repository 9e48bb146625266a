"""
Main entry point for the console client.
Connect, let the server speak first, then alternate: show the reply, read a
line, send one message. LOGOUT ends the loop after one final reply.
"""
import argparse
import sys
from typing import Callable, List, Optional

from ..common.config import DEFAULT_PORT, DEFAULT_USERNAME, ClientConfig
from ..common.errors import ConfigurationError, ProtocolError
from ..common.messages import LogoutMessage, Message
from .net import NetClient
from .session import ClientSession, CommandError


class ConsoleClient:
    """
    Drives a ClientSession over a NetClient using line-based console I/O.
    read_line and write default to input() and print() and are swapped out in tests.
    """

    def __init__(self, net: NetClient, read_line: Callable[[str], str] = input,
                 write: Callable[[str], None] = print):
        self.net = net
        self.session = ClientSession(net.config.username)
        self.read_line = read_line
        self.write = write

    def run(self) -> None:
        '''
        Converse with the server until LOGOUT. Raises ConnectionError or
        ProtocolError if the server goes away or sends garbage.
        '''
        self.session.connected()
        reply = self.net.recv()   # server speaks first
        while True:
            self.write(self.session.render(reply))
            out = self._next_message()
            self.net.send(out)
            if isinstance(out, LogoutMessage):
                break
            reply = self.net.recv()

        # exactly one closing reply follows LOGOUT
        self.write(self.session.render(self.net.recv()))
        self.session.closed()

    def _next_message(self) -> Message:
        ''' Prompt until the user types something that can be sent '''
        while True:
            line = self.read_line(self.net.config.prompt)
            try:
                return self.session.translate(line)
            except CommandError as exc:
                self.write(str(exc))


def main(argv: Optional[List[str]] = None) -> int:
    """
    Start the console client.

    Fatal problems (bad port, unreachable server, dropped connection) print a
    diagnostic to stderr and give a non-zero exit status.
    """
    ap = argparse.ArgumentParser(prog="clack-client", description="Clack console client.")
    ap.add_argument("host", help="Server host address")
    ap.add_argument("port", type=int, nargs="?", default=DEFAULT_PORT, help="Server port (1-49151)")
    ap.add_argument("--username", default=DEFAULT_USERNAME, help="Name used on messages before login")
    args = ap.parse_args(argv)

    try:
        config = ClientConfig(host=args.host, port=args.port, username=args.username)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    print(f"Attempting connection to {config.host}:{config.port}")
    net = NetClient(config)
    try:
        net.connect()
        ConsoleClient(net).run()
    except (ConnectionError, OSError) as exc:
        print(f"Connection error: {exc}", file=sys.stderr)
        return 1
    except ProtocolError as exc:
        print(f"Protocol error: {exc}", file=sys.stderr)
        return 1
    except (EOFError, KeyboardInterrupt):
        print("\nInput closed, exiting.", file=sys.stderr)
        return 1
    finally:
        net.close()

    print(f"Connection to {config.host}:{config.port} closed, exiting.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
