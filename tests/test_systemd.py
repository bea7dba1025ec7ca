# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Tests for the systemd readiness notification.
"""

import socket

import pytest

from pg2s3.systemd import notify, notify_ready


@pytest.fixture
def notify_socket(temp_dir):
    path = str(temp_dir / "notify.sock")
    with socket.socket(socket.AF_UNIX, socket.SOCK_DGRAM) as sock:
        sock.bind(path)
        sock.settimeout(5)
        yield path, sock


def test_ready_is_sent_to_notify_socket(notify_socket):
    path, sock = notify_socket

    assert notify_ready({"NOTIFY_SOCKET": path}) is True
    assert sock.recv(64) == b"READY=1"


def test_custom_state(notify_socket):
    path, sock = notify_socket

    notify("STATUS=running backup", {"NOTIFY_SOCKET": path})

    assert sock.recv(64) == b"STATUS=running backup"


def test_without_systemd_nothing_is_sent():
    assert notify_ready({}) is False


def test_unreachable_socket_is_not_fatal(temp_dir):
    assert notify_ready({"NOTIFY_SOCKET": str(temp_dir / "gone.sock")}) is False
