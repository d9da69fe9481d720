"""Client key resolution.

An identifier resolver is a pure function mapping a request to the key its
traffic is accounted under, or ``None`` when no key can be derived. Resolvers
hold no state, so one instance is shared by every request.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Request

IdentifierResolver = Callable[[Request], str | None]


def by_client_address(request: Request) -> str | None:
    """Resolve the key from the peer network address."""

    return request.client.host if request.client else None


def by_forwarded_for(request: Request) -> str | None:
    """Resolve the key from the first hop of ``X-Forwarded-For``.

    Only use this behind a proxy that overwrites the header.
    """

    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return None
    first_hop = forwarded.split(",")[0].strip()
    return first_hop or None


def by_header(name: str, *, prefix: str = "") -> IdentifierResolver:
    """Build a resolver reading a credential header.

    Args:
        name: Header name, e.g. ``X-API-Key`` or ``Authorization``.
        prefix: Scheme to strip, e.g. ``"Bearer "``. Values without the
            prefix resolve to ``None``.

    Returns:
        Resolver returning the header value (minus prefix) or ``None``.
    """

    def resolve(request: Request) -> str | None:
        value = request.headers.get(name)
        if not value:
            return None
        if prefix:
            if not value.lower().startswith(prefix.lower()):
                return None
            value = value[len(prefix):]
        return value.strip() or None

    return resolve


def composite(*resolvers: IdentifierResolver) -> IdentifierResolver:
    """Build a resolver returning the first non-``None`` result of ``resolvers``."""

    if not resolvers:
        raise ValueError("composite() needs at least one resolver")

    def resolve(request: Request) -> str | None:
        for resolver in resolvers:
            key = resolver(request)
            if key is not None:
                return key
        return None

    return resolve


def namespaced(namespace: str, resolver: IdentifierResolver) -> IdentifierResolver:
    """Prefix keys from ``resolver`` so separate key spaces never collide."""

    def resolve(request: Request) -> str | None:
        key = resolver(request)
        return None if key is None else f"{namespace}:{key}"

    return resolve


def resolver_from_name(name: str, *, header_name: str = "X-API-Key") -> IdentifierResolver:
    """Map a configured strategy name to a resolver.

    Header-derived keys are namespaced apart from address-derived ones so a
    credential can never share a window with an IP address.

    Raises:
        ValueError: If ``name`` is not a known strategy.
    """

    if name == "address":
        return by_client_address
    if name == "forwarded":
        return by_forwarded_for
    if name == "header":
        return namespaced("credential", by_header(header_name))
    if name == "header_or_address":
        return composite(
            namespaced("credential", by_header(header_name)),
            namespaced("ip", by_client_address),
        )
    raise ValueError(f"unknown identifier strategy: {name!r}")
