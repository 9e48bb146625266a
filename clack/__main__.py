"""
Usage: python -m clack server [<port>] [options]
       python -m clack client <host> [<port>] [options]
"""
import sys

from .client.main import main as client_main
from .server.main import main as server_main

USAGE = __doc__.strip()


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    mode = argv[0].lower() if argv else ""
    if mode == "server":
        return server_main(argv[1:])
    if mode == "client":
        return client_main(argv[1:])
    print(USAGE, file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
