"""Helpers for pulling audit context out of incoming requests."""

import ipaddress
import logging

from fastapi import Request

logger = logging.getLogger(__name__)

# Reverse proxies allowed to set X-Real-IP (the POS dashboard is served behind nginx)
TRUSTED_PROXY_HOSTS = ("127.0.0.1", "::1", "localhost")


def _is_valid_ip(ip_str: str) -> bool:
    """Check if a string is a valid IP address."""
    try:
        ipaddress.ip_address(ip_str)
        return True
    except ValueError:
        return False


def get_client_ip(request: Request) -> str | None:
    """Get the client IP address from a request.

    X-Real-IP is honoured only when the direct peer is a trusted local proxy.
    X-Forwarded-For is ignored since any client can forge it.
    """
    if request.client and request.client.host in TRUSTED_PROXY_HOSTS:
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            ip = real_ip.strip()
            if _is_valid_ip(ip):
                return ip
            logger.warning(f"Invalid X-Real-IP: {real_ip}")

    if request.client:
        return request.client.host

    return None


def get_user_agent(request: Request) -> str | None:
    """Return the User-Agent header truncated for log lines."""
    user_agent = request.headers.get("User-Agent")
    if user_agent is None:
        return None
    return user_agent[:200]
