import ipaddress
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_GEO_URL = "http://ip-api.com/json/{ip}"


def is_private_ip(ip: Optional[str]) -> bool:
    """
    Check if an address is private, loopback, link-local or otherwise not routable.

    Host names are not addresses and are reported as public; a missing
    address counts as private.
    """
    if not ip:
        return True

    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False

    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_unspecified
        or address.is_reserved
    )


@dataclass(frozen=True)
class GeoData:
    """Location of a client address; every field may be unknown"""
    country_code: Optional[str] = None
    country_name: Optional[str] = None
    city: Optional[str] = None


class GeoLocator:
    """
    Look up client locations over HTTP, caching results per address.

    Uses ip-api.com by default (free tier, 45 req/min). Lookup failures
    give an empty GeoData; click recording never fails because of them.
    """

    def __init__(self, url_template: str = DEFAULT_GEO_URL, timeout: float = 2.0,
                 cache_size: int = 10000, client: Optional[httpx.Client] = None):
        self.url_template = url_template
        self.client = client or httpx.Client(timeout=timeout)
        self._lookup = lru_cache(maxsize=cache_size)(self._fetch)

    def __call__(self, ip: Optional[str]) -> GeoData:
        if is_private_ip(ip):
            return GeoData()
        return self._lookup(ip)

    def _fetch(self, ip: str) -> GeoData:
        try:
            response = self.client.get(
                self.url_template.format(ip=ip),
                params={"fields": "status,country,countryCode,city"}
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.debug(f"Geo lookup for {ip} failed: {e}")
            return GeoData()

        if data.get("status") != "success":
            return GeoData()

        return GeoData(
            country_code=data.get("countryCode"),
            country_name=data.get("country"),
            city=data.get("city"),
        )

    def close(self) -> None:
        self.client.close()
