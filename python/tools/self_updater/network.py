# network.py
"""Reachability check run before an update cycle."""

from typing import Iterable, Optional

import requests
from loguru import logger

DEFAULT_HOSTS = ("google.com", "youtube.com", "bing.com")


def check_host(host: str, timeout_sec: float = 3.0) -> bool:
    """Return True if a HEAD request to the host gets any HTTP answer."""
    url = host if "://" in host else f"https://{host}"
    try:
        requests.head(url, timeout=timeout_sec, allow_redirects=False)
        return True
    except requests.RequestException as e:
        logger.debug(f"Host {host} unreachable: {e}")
        return False


def has_internet(hosts: Optional[Iterable[str]] = None, timeout_sec: float = 3.0) -> bool:
    """
    Check for an internet connection by probing a list of hosts.

    Args:
        hosts: Hosts to try in order. Defaults to DEFAULT_HOSTS.
        timeout_sec: Timeout per host.

    Returns:
        True as soon as one host answers.
    """
    for host in hosts or DEFAULT_HOSTS:
        if check_host(host, timeout_sec):
            return True
    logger.warning("No internet connection found")
    return False
