#!/usr/bin/env python3
"""
Seamless restart using SO_REUSEPORT.

Two processes can listen on the same host:port with SO_REUSEPORT, so the new
daemon binds while the old one is still serving and the kernel spreads new
connections over both until the old one shuts down.

Usage:
    python examples/reuseport_server.py --listen localhost:8080
    curl localhost:8080/?delay=5   # restart the service meanwhile
"""

import argparse
import logging
import socket
import sys

from demo_app import add_common_arguments, serve

import seamless


def parse_listen(value: str) -> tuple[str, int]:
    host, _, port = value.rpartition(":")
    return host or "0.0.0.0", int(port)


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--listen", default="localhost:8080", help="Listen address")
    add_common_arguments(parser, "reuseport")
    args = parser.parse_args()

    seamless.setup_logging(log_file=args.log_file)
    seamless.init(args.pid_file)

    host, port = parse_listen(args.listen)
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
    try:
        sock.bind((host, port))
    except OSError as e:
        logging.error(f"Cannot listen on {args.listen}: {e}")
        return 1
    sock.listen(128)

    serve(sock, args.graceful_timeout)
    return 0


if __name__ == "__main__":
    sys.exit(main())
