"""
Connection settings for both endpoints.

Values are validated when the config object is built, so a bad port or host
fails before any socket is opened.
"""
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigurationError

DEFAULT_HOST = "127.0.0.1"
DEFAULT_BIND_HOST = "0.0.0.0"
DEFAULT_PORT = 5050
DEFAULT_SERVER_NAME = "server"
DEFAULT_USERNAME = "client"
DEFAULT_STAGING_DIR = "clack_files"

# Clients may dial any registered port; servers may not bind privileged ones.
CLIENT_PORT_RANGE = (1, 49151)
SERVER_PORT_RANGE = (1024, 49151)


def check_port(port: int, port_range=CLIENT_PORT_RANGE) -> int:
    ''' Return port unchanged if it lies inside port_range, else raise ConfigurationError '''
    low, high = port_range
    if isinstance(port, bool) or not isinstance(port, int):
        raise ConfigurationError(f"Port {port!r} is not an integer.")
    if port < low or port > high:
        raise ConfigurationError(f"Port {port} not in range {low}-{high}.")
    return port


def check_host(host: str) -> str:
    ''' Hostnames are passed to the resolver as-is; only empty values are rejected here '''
    if not host or not host.strip():
        raise ConfigurationError("Host must be a non-empty string.")
    return host.strip()


@dataclass(frozen=True)
class ServerConfig:
    port: int = DEFAULT_PORT
    host: str = DEFAULT_BIND_HOST
    server_name: str = DEFAULT_SERVER_NAME
    staging_dir: Path = Path(DEFAULT_STAGING_DIR)

    def __post_init__(self):
        check_port(self.port, SERVER_PORT_RANGE)
        object.__setattr__(self, "host", check_host(self.host))
        object.__setattr__(self, "staging_dir", Path(self.staging_dir))
        if not self.server_name:
            raise ConfigurationError("Server name must be non-empty.")


@dataclass(frozen=True)
class ClientConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    username: str = DEFAULT_USERNAME

    def __post_init__(self):
        check_port(self.port, CLIENT_PORT_RANGE)
        object.__setattr__(self, "host", check_host(self.host))
        if not self.username:
            raise ConfigurationError("Username must be non-empty.")

    @property
    def prompt(self) -> str:
        return f"{self.host}:{self.port}> "
