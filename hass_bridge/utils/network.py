import logging
import socket

import psutil

logger = logging.getLogger(__name__)

LOOPBACK_ADDRESS = "127.0.0.1"


def resolve_local_address() -> str:
    """
    Return the first non-loopback IPv4 address of this host.

    Interfaces are walked in the order the OS reports them, so on a
    multi-homed host the pick depends on that order. Falls back to the
    loopback address when nothing else is configured.
    """
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, psutil.Error) as e:
        logger.warning(f"Could not enumerate network interfaces: {e}")
        return LOOPBACK_ADDRESS

    for name, addresses in interfaces.items():
        for addr in addresses:
            if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                logger.debug(f"Using address {addr.address} of interface {name}")
                return addr.address
    return LOOPBACK_ADDRESS


def build_base_url(host: str, port: int) -> str:
    return f"http://{host}:{port}"
