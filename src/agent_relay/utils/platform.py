"""Cross-platform process helpers for Windows and POSIX systems.

This module provides platform-agnostic functions for:
- Spawning child processes in their own process group
- Process termination signals
- Process discovery by port and by command line
- Locating external binaries (cloudflared, ngrok)
"""

import logging
import os
import shutil
import subprocess
import sys
from pathlib import Path
from typing import Any, Final

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS: Final[bool] = sys.platform == "win32"
IS_POSIX: Final[bool] = os.name == "posix"


# =============================================================================
# Process Management
# =============================================================================


def get_process_group_kwargs() -> dict[str, Any]:
    """Get spawn kwargs that put a child in its own process group.

    A separate group lets the whole tunnel process tree be signalled at once.

    Returns:
        Dictionary of kwargs for subprocess.Popen or asyncio.create_subprocess_exec.
    """
    if IS_WINDOWS:
        CREATE_NEW_PROCESS_GROUP = 0x00000200
        return {"creationflags": CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


def is_process_running(pid: int) -> bool:
    """Check if a process with the given PID is running."""
    if IS_WINDOWS:
        import ctypes

        PROCESS_QUERY_LIMITED_INFORMATION = 0x1000
        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        handle = kernel32.OpenProcess(PROCESS_QUERY_LIMITED_INFORMATION, False, pid)
        if handle:
            kernel32.CloseHandle(handle)
            return True
        return False
    try:
        os.kill(pid, 0)
        return True
    except OSError:
        return False


def terminate_process(pid: int, graceful: bool = True) -> bool:
    """Terminate a process by PID.

    Args:
        pid: Process ID to terminate.
        graceful: SIGTERM when True, SIGKILL otherwise (POSIX). Windows always
            uses TerminateProcess.

    Returns:
        True if process was terminated or was not running, False on error.
    """
    if not is_process_running(pid):
        return True

    if IS_WINDOWS:
        import ctypes

        PROCESS_TERMINATE = 0x0001
        kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        handle = kernel32.OpenProcess(PROCESS_TERMINATE, False, pid)
        if handle:
            result = kernel32.TerminateProcess(handle, 1)
            kernel32.CloseHandle(handle)
            return bool(result)
        return False

    import signal

    try:
        os.kill(pid, signal.SIGTERM if graceful else signal.SIGKILL)
        return True
    except OSError as e:
        logger.error(f"Failed to terminate process {pid}: {e}")
        return False


def kill_process_group(pid: int) -> None:
    """Force-kill the process group led by ``pid``.

    Falls back to killing the single process when the group is gone or the
    platform has no process groups.
    """
    if IS_WINDOWS:
        terminate_process(pid, graceful=False)
        return

    import signal

    try:
        os.killpg(os.getpgid(pid), signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError):
        terminate_process(pid, graceful=False)


# =============================================================================
# Process Discovery
# =============================================================================


def find_pid_by_port(port: int) -> int | None:
    """Find the PID of the process listening on a given port.

    Uses lsof on POSIX and netstat on Windows.

    Returns:
        PID of the process listening on the port, or None if not found.
    """
    if IS_WINDOWS:
        return _find_pid_by_port_windows(port)
    return _find_pid_by_port_posix(port)


def _find_pid_by_port_posix(port: int) -> int | None:
    try:
        result = subprocess.run(
            ["lsof", "-ti", f"tcp:{port}", "-sTCP:LISTEN"],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode == 0 and result.stdout.strip():
            return int(result.stdout.strip().split()[0])
    except FileNotFoundError:
        logger.warning("lsof not found - cannot find process by port")
    except (ValueError, OSError) as e:
        logger.debug(f"Failed to find process by port: {e}")
    return None


def _find_pid_by_port_windows(port: int) -> int | None:
    try:
        result = subprocess.run(
            ["netstat", "-ano", "-p", "TCP"],
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode == 0:
            for line in result.stdout.strip().split("\n"):
                # Format: TCP    127.0.0.1:38100    0.0.0.0:0    LISTENING    12345
                if f":{port}" in line and "LISTENING" in line:
                    parts = line.split()
                    if len(parts) >= 5:
                        try:
                            return int(parts[-1])
                        except ValueError:
                            continue
    except FileNotFoundError:
        logger.warning("netstat not found - cannot find process by port")
    except (ValueError, OSError) as e:
        logger.debug(f"Failed to find process by port: {e}")
    return None


def find_pids_by_command(pattern: str) -> list[int]:
    """Find PIDs whose full command line matches ``pattern``.

    The calling process is never included. Returns an empty list on Windows,
    where there is no pgrep equivalent worth shelling out to.
    """
    if IS_WINDOWS:
        return []
    try:
        result = subprocess.run(
            ["pgrep", "-f", pattern],
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        logger.warning("pgrep not found - cannot find processes by command")
        return []
    except OSError as e:
        logger.debug(f"Failed to find processes by command: {e}")
        return []

    own_pid = os.getpid()
    pids = []
    for token in result.stdout.split():
        try:
            pid = int(token)
        except ValueError:
            continue
        if pid != own_pid:
            pids.append(pid)
    return pids


# =============================================================================
# Binary Lookup
# =============================================================================


def find_executable(
    name: str,
    configured_path: str | None = None,
    env_var: str | None = None,
    default_paths: tuple[str, ...] = (),
) -> str | None:
    """Locate an external executable.

    Resolution order: environment override, configured path, PATH, then the
    platform's default install locations.

    Args:
        name: Executable name to search on PATH.
        configured_path: Explicit path from configuration.
        env_var: Environment variable that overrides everything else.
        default_paths: Candidate install locations checked last.

    Returns:
        Absolute path to the executable, or None if it cannot be found.
    """
    candidates: list[str] = []
    if env_var and os.environ.get(env_var):
        candidates.append(os.environ[env_var])
    if configured_path:
        candidates.append(configured_path)

    for candidate in candidates:
        resolved = shutil.which(candidate)
        if resolved:
            return resolved
        path = Path(candidate).expanduser()
        if path.is_file():
            return str(path)
        logger.debug(f"Configured {name} path does not exist: {candidate}")

    on_path = shutil.which(name)
    if on_path:
        return on_path

    for default in default_paths:
        path = Path(default).expanduser()
        if path.is_file() and os.access(path, os.X_OK):
            return str(path)

    return None
