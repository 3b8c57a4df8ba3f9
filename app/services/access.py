import ipaddress
import logging
from typing import Iterable

logger = logging.getLogger("access")

Network = ipaddress.IPv4Network | ipaddress.IPv6Network


def _parse_networks(entries: Iterable[str]) -> list[Network]:
    return [ipaddress.ip_network(entry, strict=False) for entry in entries]


class AccessPolicy:
    """Deny entries win; a non-empty allow list rejects everything it does not match."""

    def __init__(self, allow: Iterable[str] = (), deny: Iterable[str] = ()) -> None:
        self._allow = _parse_networks(allow)
        self._deny = _parse_networks(deny)

    @property
    def restricted(self) -> bool:
        return bool(self._allow or self._deny)

    def is_allowed(self, client_ip: str | None) -> bool:
        if not self.restricted:
            return True
        if not client_ip:
            return False
        try:
            address = ipaddress.ip_address(client_ip)
        except ValueError:
            logger.warning("Unparseable client address %s", client_ip)
            return False
        if any(address in network for network in self._deny):
            return False
        if self._allow:
            return any(address in network for network in self._allow)
        return True
