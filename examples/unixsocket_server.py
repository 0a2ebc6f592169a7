#!/usr/bin/env python3
"""
Seamless restart over a unix socket.

The new daemon removes the socket path and binds a fresh socket on it. The
old daemon keeps accepting on its (now unlinked) socket until it is told to
shut down, and never removes the path itself: cleaning up is the job of the
next generation.

Usage:
    python examples/unixsocket_server.py --unix-socket /tmp/seamless.sock
    curl --unix-socket /tmp/seamless.sock http://localhost/?delay=5
"""

import argparse
import logging
import socket
import sys
from pathlib import Path

from demo_app import add_common_arguments, serve

import seamless


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--unix-socket", type=Path, default=Path("/tmp/seamless.sock"), help="Listen unix socket")
    add_common_arguments(parser, "unixsocket")
    args = parser.parse_args()

    seamless.setup_logging(log_file=args.log_file)
    seamless.init(args.pid_file)

    args.unix_socket.unlink(missing_ok=True)
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(str(args.unix_socket))
    except OSError as e:
        logging.error(f"Cannot listen on {args.unix_socket}: {e}")
        return 1
    sock.listen(128)

    serve(sock, args.graceful_timeout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
