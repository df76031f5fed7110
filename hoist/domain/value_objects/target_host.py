"""
Target Host Value Object

Architectural Intent:
- Immutable address of the single host a deployment promotes to
- Validates hostname (DNS name or IP literal), port bounds, non-empty user
- parse() accepts the operator shorthand user@host[:port], with IPv6 in brackets
"""

import ipaddress
import re
from dataclasses import dataclass

_LABEL_RE = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def _is_valid_host(host: str) -> bool:
    if not host or len(host) > 253:
        return False
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        pass
    return all(_LABEL_RE.match(label) for label in host.rstrip(".").split("."))


@dataclass(frozen=True)
class TargetHost:
    host: str
    user: str
    port: int = 22

    def __post_init__(self) -> None:
        if not self.user:
            raise ValueError("Target user cannot be empty")
        if not (1 <= self.port <= 65535):
            raise ValueError(f"Port must be 1-65535, got {self.port}")
        if not _is_valid_host(self.host):
            raise ValueError(f"Invalid hostname: {self.host!r}")

    def __str__(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.user}@{host}:{self.port}"

    @staticmethod
    def parse(spec: str, default_user: str = "", default_port: int = 22) -> "TargetHost":
        user, port = default_user, default_port
        rest = spec.strip()

        if "@" in rest:
            user, rest = rest.split("@", 1)

        if rest.startswith("["):
            end = rest.find("]")
            if end == -1:
                raise ValueError(f"Unterminated IPv6 bracket in: {spec}")
            host, tail = rest[1:end], rest[end + 1:]
            if tail.startswith(":"):
                port = int(tail[1:])
        elif rest.count(":") == 1:
            host, port_text = rest.split(":")
            port = int(port_text)
        else:
            host = rest

        return TargetHost(host=host, user=user, port=port)
