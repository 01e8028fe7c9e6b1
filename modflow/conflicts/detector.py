"""Conflict detection across the four claim domains.

Detection and policy application are separate passes: ``detect`` only
collects records from a fully-populated registry, ``apply_policy`` then
decides per record. Registration order therefore only decides who is
"first" in a record, never which policy fires.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from modflow.errors import ConflictError
from modflow.eventbus import EventBus
from modflow.events import ConflictDetected, publish
from modflow.metrics import Metrics
from modflow.registry import ModuleRegistry

logger = logging.getLogger(__name__)

DOMAINS: Tuple[str, ...] = ("routes", "views", "config", "services")


class ConflictPolicy(str, Enum):
    EXCEPTION = "exception"
    WARNING = "warning"
    OVERRIDE = "override"
    IGNORE = "ignore"


DEFAULT_POLICY = ConflictPolicy.WARNING


@dataclass(frozen=True)
class ConflictRecord:
    domain: str
    key: str
    modules: Tuple[str, ...]

    def to_dict(self) -> Dict[str, object]:
        return {"domain": self.domain, "key": self.key, "modules": list(self.modules)}


@dataclass
class PolicyOutcome:
    """Result of applying the policy table to a detection pass."""

    records: List[ConflictRecord] = field(default_factory=list)
    by_policy: Dict[ConflictPolicy, List[ConflictRecord]] = field(default_factory=dict)
    winners: Dict[Tuple[str, str], str] = field(default_factory=dict)

    def winner(self, domain: str, key: str) -> Optional[str]:
        return self.winners.get((domain, key))

    def is_winner(self, domain: str, key: str, module: str) -> bool:
        """Uncontested keys belong to whoever claims them."""
        won = self.winners.get((domain, key))
        return won is None or won == module

    def to_dict(self) -> Dict[str, object]:
        return {
            "records": [
                {**r.to_dict(), "winner": self.winner(r.domain, r.key)}
                for r in self.records
            ],
            "by_policy": {
                p.value: len(recs) for p, recs in self.by_policy.items()
            },
        }


class ConflictDetector:
    def __init__(
        self,
        bus: EventBus | None = None,
        metrics: Metrics | None = None,
    ) -> None:
        self._bus = bus
        self._metrics = metrics

    def detect(self, registry: ModuleRegistry) -> List[ConflictRecord]:
        """First-seen map per domain over enabled modules (registration order)."""
        claims: Dict[str, Dict[str, List[str]]] = {d: {} for d in DOMAINS}
        for handle in registry.enabled_handles():
            for domain, keys in handle.descriptor.claims().items():
                for key in keys:
                    claims[domain].setdefault(key, []).append(handle.name)
        records: List[ConflictRecord] = []
        for domain in DOMAINS:
            for key, modules in claims[domain].items():
                if len(modules) > 1:
                    records.append(ConflictRecord(domain, key, tuple(modules)))
        if records:
            logger.debug("Detected %d conflict(s)", len(records))
        return records

    def apply_policy(
        self,
        records: List[ConflictRecord],
        policy_table: Mapping[str, str | ConflictPolicy] | None = None,
    ) -> PolicyOutcome:
        table = {
            d: ConflictPolicy(p) for d, p in (policy_table or {}).items()
        }
        outcome = PolicyOutcome(records=list(records))
        for rec in records:
            policy = table.get(rec.domain, DEFAULT_POLICY)
            winner = None
            if policy is ConflictPolicy.OVERRIDE:
                winner = rec.modules[-1]
            elif policy is not ConflictPolicy.EXCEPTION:
                winner = rec.modules[0]
            outcome.by_policy.setdefault(policy, []).append(rec)
            if self._metrics is not None:
                self._metrics.inc(
                    "conflicts_total", {"domain": rec.domain, "policy": policy.value}
                )
            publish(
                self._bus,
                ConflictDetected(
                    domain=rec.domain,
                    key=rec.key,
                    modules=list(rec.modules),
                    policy=policy.value,
                    winner=winner,
                ),
            )
            if policy is ConflictPolicy.EXCEPTION:
                raise ConflictError(rec.domain, rec.key, rec.modules)
            outcome.winners[(rec.domain, rec.key)] = winner  # type: ignore[assignment]
            if policy is ConflictPolicy.WARNING:
                logger.warning(
                    "Conflict in %s: '%s' claimed by %s (keeping %s)",
                    rec.domain,
                    rec.key,
                    ", ".join(rec.modules),
                    winner,
                )
            elif policy is ConflictPolicy.OVERRIDE:
                logger.debug(
                    "Conflict in %s: '%s' overridden by %s", rec.domain, rec.key, winner
                )
        return outcome


__all__ = [
    "DOMAINS",
    "DEFAULT_POLICY",
    "ConflictPolicy",
    "ConflictRecord",
    "PolicyOutcome",
    "ConflictDetector",
]
