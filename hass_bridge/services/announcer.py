"""
mDNS self-advertisement through Avahi service files.

Avahi watches ``/etc/avahi/services`` and announces every service group it
finds there. Publishing writes a ``_home-assistant._tcp`` service file so the
display discovers the bridge by itself; retracting deletes it again. If Avahi
is not running the bridge still serves HTTP and the user enters the URL
on the display by hand.
"""

import errno
import logging
import signal
import subprocess
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from xml.sax.saxutils import escape

import psutil

from ..core.exceptions import AnnouncementUnavailable
from ..utils.network import build_base_url, resolve_local_address
from .presence import AVAHI_DAEMON, PROBE_TIMEOUT_SECONDS, find_daemon_processes, is_daemon_running

logger = logging.getLogger(__name__)

SERVICE_TYPE = "_home-assistant._tcp"
HA_VERSION = "2024.1.0"
DEFAULT_SERVICE_DIR = "/etc/avahi/services"
DEFAULT_SERVICE_FILE_NAME = "homeassistant-bridge.service"


@dataclass(frozen=True)
class ServiceDescriptor:
    service_name: str
    port: int
    base_url: str
    instance_uuid: str
    payload: str


def build_descriptor(service_name: str, port: int, base_url: str, instance_uuid: str) -> str:
    """
    Render the Avahi service-group XML for the bridge.

    ``requires_api_password`` is always True: the display must walk through
    the login flow even when the bridge accepts any credentials.
    """
    name = escape(service_name)
    return "\n".join([
        "<?xml version=\"1.0\" standalone='no'?>",
        '<!DOCTYPE service-group SYSTEM "avahi-service.dtd">',
        "<service-group>",
        f'  <name replace-wildcards="yes">{name}</name>',
        '  <service protocol="ipv4">',
        f"    <type>{SERVICE_TYPE}</type>",
        f"    <port>{port}</port>",
        f"    <txt-record>base_url={escape(base_url)}</txt-record>",
        f"    <txt-record>internal_url={escape(base_url)}</txt-record>",
        "    <txt-record>external_url=</txt-record>",
        f"    <txt-record>version={HA_VERSION}</txt-record>",
        f"    <txt-record>uuid={instance_uuid}</txt-record>",
        f"    <txt-record>location_name={name}</txt-record>",
        "    <txt-record>requires_api_password=True</txt-record>",
        "  </service>",
        "</service-group>",
    ])


def reload_avahi() -> None:
    """Ask Avahi to rescan its service directory. Failures are ignored, Avahi polls the directory anyway."""
    try:
        result = subprocess.run(
            [AVAHI_DAEMON, "--reload"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=PROBE_TIMEOUT_SECONDS,
            check=False,
        )
        if result.returncode == 0:
            return
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug(f"avahi-daemon --reload failed: {e}")

    try:
        for proc in find_daemon_processes(AVAHI_DAEMON):
            proc.send_signal(signal.SIGHUP)
    except (OSError, psutil.Error) as e:
        logger.debug(f"Could not send SIGHUP to {AVAHI_DAEMON}: {e}")


class ServiceAnnouncer:
    """
    Owns the bridge's Avahi service file.

    ``active`` is True exactly while the announcer believes its service file
    exists. The instance uuid is fixed for the lifetime of the object.
    """

    def __init__(
        self,
        service_name: str,
        port: int,
        service_dir: str | Path = DEFAULT_SERVICE_DIR,
        service_file_name: str = DEFAULT_SERVICE_FILE_NAME,
        detect: Optional[Callable[[], bool]] = None,
        resolve_address: Callable[[], str] = resolve_local_address,
        reload: Callable[[], None] = reload_avahi,
    ):
        self.service_name = service_name
        self.port = port
        self.service_dir = Path(service_dir)
        self.service_file = self.service_dir / service_file_name
        self.uuid = str(uuid.uuid4())
        self.active = False
        self._detect = detect or (lambda: is_daemon_running(AVAHI_DAEMON))
        self._resolve_address = resolve_address
        self._reload = reload

    def detect_running(self) -> bool:
        try:
            return bool(self._detect())
        except Exception as e:
            logger.debug(f"mDNS: daemon detection failed: {e}")
            return False

    def resolve_local_address(self) -> str:
        return self._resolve_address()

    def describe(self) -> ServiceDescriptor:
        base_url = build_base_url(self.resolve_local_address(), self.port)
        return ServiceDescriptor(
            service_name=self.service_name,
            port=self.port,
            base_url=base_url,
            instance_uuid=self.uuid,
            payload=build_descriptor(self.service_name, self.port, base_url, self.uuid),
        )

    def _request_reload(self) -> None:
        try:
            self._reload()
        except Exception as e:
            logger.debug(f"mDNS: reload request failed: {e}")

    def _ensure_daemon(self) -> None:
        if not self.detect_running():
            raise AnnouncementUnavailable(f"{AVAHI_DAEMON} is not running")

    def publish(self) -> bool:
        """
        Write the service file and ask Avahi to pick it up.

        Never raises. Returns True when the announcement is active afterwards.
        """
        try:
            self._ensure_daemon()
        except AnnouncementUnavailable:
            logger.error("mDNS: Avahi daemon is not running!")
            logger.error("mDNS: Install: sudo apt install avahi-daemon && sudo systemctl enable --now avahi-daemon")
            logger.error(f"mDNS: Permission: sudo chown $(whoami) {self.service_dir}")
            logger.warning(f"mDNS: Fallback: enter http://YOUR_IP:{self.port} on the display")
            return False

        descriptor = self.describe()

        try:
            self.service_dir.mkdir(parents=True, exist_ok=True)
            self.service_file.write_text(descriptor.payload, encoding="utf-8")
        except OSError as e:
            logger.error(f"mDNS: Failed to write service file: {e}")
            if e.errno in (errno.EACCES, errno.EPERM):
                logger.error(f"mDNS: Permission denied, run: sudo chown $(whoami) {self.service_dir}")
            return False

        self.active = True
        self._request_reload()

        host = descriptor.base_url.split("//", 1)[-1]
        logger.info(f"mDNS: Broadcasting {self.service_name}.{SERVICE_TYPE}.local on {host}")
        logger.info(f"mDNS: UUID: {self.uuid}")
        logger.info(f"mDNS: Verify: avahi-browse {SERVICE_TYPE} -r -t")
        return True

    def retract(self) -> None:
        """Remove the service file. Safe to call repeatedly."""
        if not self.active:
            return

        try:
            if self.service_file.exists():
                self.service_file.unlink()
                self._request_reload()
                logger.info("mDNS: Service file removed")
        except OSError as e:
            logger.warning(f"mDNS: Could not remove service file: {e}")

        self.active = False
