# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
systemd readiness notification.

When pg2s3 runs as a Type=notify service, systemd passes a datagram socket
in NOTIFY_SOCKET and waits for "READY=1" on it. Outside systemd the
variable is unset and notifying is a no-op.
"""

import os
import socket
from typing import Mapping

import structlog

logger = structlog.get_logger()

READY = "READY=1"


def notify(state: str, environ: Mapping[str, str] | None = None) -> bool:
    """
    Send a state string to the service manager.

    Returns:
        True if a notification was sent, False when not running under
        systemd or the socket is unreachable
    """
    env = os.environ if environ is None else environ
    address = env.get("NOTIFY_SOCKET")
    if not address:
        return False

    # A leading "@" names a socket in the abstract namespace
    if address.startswith("@"):
        address = "\0" + address[1:]

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
            sock.connect(address)
            sock.sendall(state.encode("utf-8"))
    except OSError as e:
        logger.warning("systemd_notify_failed", state=state, error=str(e))
        return False

    logger.debug("systemd_notified", state=state)
    return True


def notify_ready(environ: Mapping[str, str] | None = None) -> bool:
    return notify(READY, environ)
