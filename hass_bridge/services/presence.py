"""
Detection of the local Avahi daemon.

Each probe is a callable taking the daemon name and returning True when it
finds the daemon. Probes are tried in order and the first positive answer
wins. A probe that fails or raises counts as "not found".
"""

import logging
import subprocess
from typing import Callable, Iterable

import psutil

logger = logging.getLogger(__name__)

AVAHI_DAEMON = "avahi-daemon"
PROBE_TIMEOUT_SECONDS = 5

PresenceProbe = Callable[[str], bool]


def systemctl_probe(daemon_name: str) -> bool:
    """Ask systemd whether the daemon's unit is active."""
    try:
        result = subprocess.run(
            ["systemctl", "is-active", "--quiet", daemon_name],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=PROBE_TIMEOUT_SECONDS,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"systemctl probe for {daemon_name} failed: {e}")
        return False
    return result.returncode == 0


def find_daemon_processes(daemon_name: str) -> list[psutil.Process]:
    processes = []
    for proc in psutil.process_iter(["name"]):
        try:
            if proc.info.get("name") == daemon_name:
                processes.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return processes


def process_scan_probe(daemon_name: str) -> bool:
    """Look for a running process with the daemon's name."""
    try:
        return bool(find_daemon_processes(daemon_name))
    except psutil.Error as e:
        logger.debug(f"Process scan for {daemon_name} failed: {e}")
        return False


DEFAULT_PROBES: tuple[PresenceProbe, ...] = (systemctl_probe, process_scan_probe)


def is_daemon_running(daemon_name: str = AVAHI_DAEMON, probes: Iterable[PresenceProbe] = DEFAULT_PROBES) -> bool:
    for probe in probes:
        try:
            if probe(daemon_name):
                logger.debug(f"{daemon_name} detected by {getattr(probe, '__name__', probe)}")
                return True
        except Exception as e:
            logger.debug(f"Presence probe {getattr(probe, '__name__', probe)} raised: {e}")
    return False
