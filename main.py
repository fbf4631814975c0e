#!/usr/bin/env python
# -*- coding: utf-8 -*-

"""
Main application entry point - GLMT proxy

Spawned by the profile launcher; prints PROXY_READY:<port> on stdout once
listening on 127.0.0.1 and exits on SIGTERM/SIGINT.
"""

import argparse
import sys

from dotenv import load_dotenv

from glmt_proxy.config import Settings
from glmt_proxy.helpers import configure_structlog, error_log
from glmt_proxy.server import ProxyServer


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="GLMT thinking proxy")
    parser.add_argument("-v", "--verbose", action="store_true", help="verbose request/response logging")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    load_dotenv()

    settings = Settings(VERBOSE=True) if args.verbose else Settings()
    configure_structlog(settings.LOG_LEVEL)

    proxy = ProxyServer(settings)
    try:
        proxy.bind()
    except OSError as e:
        error_log("[glmt-proxy] Failed to start", error=str(e))
        return 1

    try:
        proxy.run()
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
