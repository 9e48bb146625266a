import argparse
import logging
import socket
import sys
import threading
from typing import List, Optional

from ..common.config import (DEFAULT_BIND_HOST, DEFAULT_PORT, DEFAULT_SERVER_NAME,
                             DEFAULT_STAGING_DIR, ServerConfig)
from ..common.errors import ConfigurationError, ProtocolError
from ..common.protocol import MessageStream
from .files import FileStore
from .session import Fatal, Phase, Session, SessionHandler
from .state import UserDirectory

LOG_FORMAT = "%(asctime)s - %(threadName)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


class ClackServer:
    """
    Accepts connections and serves each one on its own thread.
    A failure inside one session is logged and ends that session only.
    """

    def __init__(self, config: ServerConfig):
        self.config = config
        self.users = UserDirectory()
        self.handler = SessionHandler(config.server_name, self.users,
                                      FileStore(config.staging_dir))
        self.sock: Optional[socket.socket] = None
        self.running = False

    def serve_forever(self):
        ''' Bind, then accept connections until stop() is called '''
        self.sock = socket.create_server((self.config.host, self.config.port))
        self.running = True
        logger.info("Server listening on %s:%d", self.config.host, self.config.port)
        try:
            while self.running:
                try:
                    conn, addr = self.sock.accept()
                except OSError:
                    if self.running:
                        raise
                    break   # listening socket closed by stop()
                conn.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                threading.Thread(target=self.handle_client, args=(conn, addr),
                                 name=f"session-{addr[0]}:{addr[1]}", daemon=True).start()
        finally:
            self.stop()

    def stop(self):
        self.running = False
        if self.sock:
            self.sock.close()

    def handle_client(self, conn: socket.socket, addr) -> Session:
        ''' This function serves one connection from greeting to CLOSED
            Inputs:
            - conn: socket object representing the client connection
            - addr: address of the connected client
            Output: the finished Session (phase is always CLOSED)
        '''
        session = Session(peer=addr)
        stream = MessageStream(conn)
        logger.info("New connection from %s", addr)
        try:
            self._send(stream, self.handler.greeting())
            while session.phase is not Phase.CLOSED:
                msg = stream.recv()
                logger.debug("<= %r", msg)
                result = self.handler.dispatch(session, msg)
                if isinstance(result, Fatal):
                    logger.warning("Session %s aborted: %s", addr, result.cause)
                    break
                self._send(stream, result.reply)
        except ProtocolError as exc:
            logger.warning("Session %s sent an undecodable message: %s", addr, exc)
        except (ConnectionError, OSError) as exc:
            logger.warning("Session %s lost connection: %s", addr, exc)
        except Exception:
            # print for server operator; the accept loop keeps running
            logger.exception("Unexpected error in session %s", addr)
        finally:
            self.handler.end(session)
            stream.close()
            logger.info("Connection with %s closed", addr)
        return session

    def _send(self, stream: MessageStream, msg):
        stream.send(msg)
        logger.debug("=> %r", msg)


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="clack-server", description="Clack chat server.")
    ap.add_argument("port", type=int, nargs="?", default=DEFAULT_PORT, help="Port to listen on (1024-49151)")
    ap.add_argument("--host", default=DEFAULT_BIND_HOST, help="Address to bind")
    ap.add_argument("--name", default=DEFAULT_SERVER_NAME, help="Username the server puts on its messages")
    ap.add_argument("--staging-dir", default=DEFAULT_STAGING_DIR, help="Where uploaded files are saved")
    ap.add_argument("-v", "--verbose", action="store_true", help="Log every message sent and received")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format=LOG_FORMAT, handlers=[logging.StreamHandler(sys.stdout)])
    try:
        config = ServerConfig(port=args.port, host=args.host, server_name=args.name,
                              staging_dir=args.staging_dir)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    server = ClackServer(config)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    except OSError as exc:
        logger.error("Server error: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
