# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Terminal prompts used by the CLI.

The orchestrator only sees these as plain callables, tests pass their own.
"""

import getpass
import sys
from typing import Callable, TextIO

YES_ANSWERS = ("y", "yes")


def confirm_prompt(
    message: str,
    input_func: Callable[[str], str] = input,
    output: TextIO | None = None,
) -> bool:
    """
    Ask a yes/no question on the terminal.

    Anything other than "y" or "yes" (case-insensitive), including end of
    input, counts as no.
    """
    try:
        response = input_func(f"{message} [y/n]: ")
    except EOFError:
        print(file=output or sys.stdout)
        return False

    return response.strip().lower() in YES_ANSWERS


def private_key_prompt(
    message: str,
    getpass_func: Callable[[str], str] = getpass.getpass,
) -> str:
    """Read an age private key without echoing it."""
    return getpass_func(message).strip()
