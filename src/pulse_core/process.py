"""Platform-specific subprocess helpers."""

import asyncio
import logging
import os
import signal
import subprocess
from typing import Any

logger = logging.getLogger(__name__)

IS_WINDOWS = os.name == "nt"


def shell_command(command: str) -> list[str]:
    """Wrap a command line for the platform shell."""
    if IS_WINDOWS:
        return ["cmd", "/C", command]
    return ["sh", "-c", command]


def process_group_kwargs() -> dict[str, Any]:
    """Spawn arguments that put a child in its own process group."""
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def _send_interrupt(proc: asyncio.subprocess.Process) -> None:
    proc.send_signal(signal.SIGINT)


def _send_terminate(proc: asyncio.subprocess.Process) -> None:
    proc.terminate()


_graceful_stop = _send_terminate if IS_WINDOWS else _send_interrupt


def request_graceful_stop(proc: asyncio.subprocess.Process) -> None:
    """Ask a process to exit: SIGINT on POSIX, direct termination on Windows."""
    try:
        _graceful_stop(proc)
    except ProcessLookupError:
        pass


def force_kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def kill_tree(proc: asyncio.subprocess.Process) -> None:
    """Kill a process started with process_group_kwargs() and its descendants.

    Does not reap the process; callers still await proc.wait().
    """
    if IS_WINDOWS:
        if proc.returncode is None:
            killer = await asyncio.create_subprocess_exec(
                "taskkill",
                "/T",
                "/F",
                "/PID",
                str(proc.pid),
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            await killer.wait()
    else:
        try:
            # pgid equals the leader's pid under start_new_session
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.warning(f"Cannot kill process group {proc.pid}: {e}")

    if proc.returncode is None:
        force_kill(proc)
