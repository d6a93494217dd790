import re
from typing import Optional
from urllib.parse import urlparse

from .geo import is_private_ip

MAX_URL_LENGTH = 2048

BLOCKED_HOSTS = {'localhost', 'localhost.localdomain'}

DOMAIN_PATTERN = re.compile(
    r'^(?=.{1,253}$)[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?(\.[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?)+$'
)

# Common spam keywords (can be extended)
SPAM_KEYWORDS = [
    'porn', 'xxx', 'adult',
    'casino', 'gambling', 'poker',
    'viagra', 'cialis', 'pharmacy',
    'lottery', 'click-here', 'free-money', 'earn-money'
]


def is_valid_url(url: str) -> tuple[bool, str]:
    """
    Validate that a URL is an absolute, public HTTP(S) URL.

    Args:
        url: The URL to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not url:
        return False, "URL cannot be empty"

    if len(url) > MAX_URL_LENGTH:
        return False, f"URL is too long (max {MAX_URL_LENGTH} characters)"

    if any(c.isspace() for c in url):
        return False, "URL cannot contain whitespace"

    try:
        result = urlparse(url)
        hostname = result.hostname
    except ValueError as e:
        return False, f"Invalid URL: {e}"

    # Only http and https
    if result.scheme not in ['http', 'https']:
        return False, "Only HTTP and HTTPS URLs are allowed"

    # Must have a host
    if not result.netloc or not hostname:
        return False, "Invalid URL format"

    if hostname in BLOCKED_HOSTS or hostname.endswith('.localhost') or is_private_ip(hostname):
        return False, "Internal/private URLs are not allowed"

    return True, ""


def is_spam_url(url: str) -> bool:
    """
    Check if URL contains spam keywords.

    Args:
        url: The URL to check

    Returns:
        True if spam detected, False otherwise
    """
    url_lower = url.lower()

    return any(keyword in url_lower for keyword in SPAM_KEYWORDS)


def get_client_ip(request) -> str:
    """
    Get client IP address from request.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address
    """
    # Check for X-Forwarded-For header (if behind proxy)
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    # Otherwise use client.host
    return request.client.host if request.client else "unknown"


def request_domain(host_header: Optional[str], default_domain: str) -> Optional[str]:
    """
    Domain selected by a Host header.

    Returns None for the shared default domain.
    """
    if not host_header:
        return None

    host = host_header.strip().lower()
    if host.startswith('['):
        # IPv6 literal, keep the brackets off
        host = host[1:].split(']', 1)[0]
    else:
        host = host.split(':', 1)[0]

    if not host or host == default_domain:
        return None

    return host


def is_valid_domain(domain: str) -> bool:
    """Check that a custom domain is a plain lowercase host name"""
    return bool(DOMAIN_PATTERN.match(domain))
