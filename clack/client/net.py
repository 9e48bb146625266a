import logging
import socket
from typing import Optional

from ..common.config import ClientConfig
from ..common.messages import Message
from ..common.protocol import MessageStream

logger = logging.getLogger(__name__)


class NetClient:
    ''' Network side of the console client: one connection, one message at a time '''
    def __init__(self, config: ClientConfig, timeout: Optional[float] = None):
        self.config = config
        self.timeout = timeout   # connect timeout only; reads block like the server's
        self.stream: Optional[MessageStream] = None

    @classmethod
    def from_socket(cls, config: ClientConfig, sock: socket.socket) -> "NetClient":
        ''' Wrap an already-connected socket (used when the transport is set up elsewhere) '''
        net = cls(config)
        net.stream = MessageStream(sock)
        return net

    def connect(self) -> None:
        '''
        Establish a TCP connection to the chat server.
        Raises ConnectionError if the host cannot be resolved or refuses the connection.
        '''
        try:
            sock = socket.create_connection((self.config.host, self.config.port), timeout=self.timeout)
        except socket.gaierror as exc:
            raise ConnectionError(f"cannot resolve host {self.config.host!r}: {exc}") from exc
        except OSError as exc:
            if isinstance(exc, ConnectionError):
                raise
            raise ConnectionError(f"cannot connect to {self.config.host}:{self.config.port}: {exc}") from exc
        sock.settimeout(None)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1) # Disable Nagle's algorithm: send any data immediately
        self.stream = MessageStream(sock)
        logger.debug("Connected to %s:%d", self.config.host, self.config.port)

    def send(self, msg: Message) -> None:
        if self.stream is None:
            raise ConnectionError("not connected")
        self.stream.send(msg)

    def recv(self) -> Message:
        if self.stream is None:
            raise ConnectionError("not connected")
        return self.stream.recv()

    def close(self) -> None:
        if self.stream is not None:
            self.stream.close()
            self.stream = None
