"""Ordered rule table mapping a decoded path to a cache domain.

Rules are evaluated top to bottom over the path's element names and the
first match wins.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass

from gnmiwatch.telemetry.paths import DecodedPath


class Domain(enum.StrEnum):
    INTERFACE = "interface"
    SYSTEM = "system"
    BGP = "bgp"
    ROUTE = "route"


class UpdateKind(enum.StrEnum):
    NETWORK_INSTANCE_INTERFACE = "network-instance-interface"
    INTERFACE = "interface"
    SYSTEM = "system"
    BGP_PEER = "bgp-peer"
    BGP_STATISTICS = "bgp-statistics"
    ROUTE = "route"


@dataclass(frozen=True)
class Classification:
    domain: Domain
    kind: UpdateKind


@dataclass(frozen=True)
class ClassificationRule:
    """A named predicate over a path and the classification it yields."""

    name: str
    matches: Callable[[DecodedPath], bool]
    classify: Callable[[DecodedPath], Classification]


def _fixed(domain: Domain, kind: UpdateKind) -> Callable[[DecodedPath], Classification]:
    result = Classification(domain, kind)
    return lambda _path: result


def _bgp_kind(path: DecodedPath) -> Classification:
    if path.has("neighbor"):
        return Classification(Domain.BGP, UpdateKind.BGP_PEER)
    return Classification(Domain.BGP, UpdateKind.BGP_STATISTICS)


RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        name="network-instance-interface",
        matches=lambda p: (
            p.has("network-instance", "interface") and not p.has_any("protocols", "bgp")
        ),
        classify=_fixed(Domain.INTERFACE, UpdateKind.NETWORK_INSTANCE_INTERFACE),
    ),
    ClassificationRule(
        name="interface",
        matches=lambda p: p.has("interface") and not p.has("network-instance"),
        classify=_fixed(Domain.INTERFACE, UpdateKind.INTERFACE),
    ),
    ClassificationRule(
        name="system",
        matches=lambda p: p.has_any("platform", "control", "cpu", "memory"),
        classify=_fixed(Domain.SYSTEM, UpdateKind.SYSTEM),
    ),
    ClassificationRule(
        name="bgp",
        matches=lambda p: p.has("network-instance") and p.has_any("protocols", "bgp"),
        classify=_bgp_kind,
    ),
    ClassificationRule(
        name="bgp-bare",
        matches=lambda p: p.has("bgp"),
        classify=_bgp_kind,
    ),
    ClassificationRule(
        name="route",
        matches=lambda p: p.has("route-table", "route"),
        classify=_fixed(Domain.ROUTE, UpdateKind.ROUTE),
    ),
)


def classify(
    path: DecodedPath,
    rules: tuple[ClassificationRule, ...] = RULES,
) -> Classification | None:
    """Return the classification of the first matching rule, or ``None``."""
    for rule in rules:
        if rule.matches(path):
            return rule.classify(path)
    return None
