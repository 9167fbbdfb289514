"""Security gating and repository-level risk aggregation."""

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from enum import Enum

from .models import Ecosystem, ResolvedUpdate, RiskLevel, SecurityVerdict, UpdateTier
from .security import SecurityOracle

logger = logging.getLogger(__name__)

TIER_ORDER = (UpdateTier.MAJOR, UpdateTier.MINOR, UpdateTier.PATCH, UpdateTier.UNKNOWN)


class GateState(str, Enum):
    UNCHECKED = "unchecked"
    SAFE = "safe"
    UNSAFE = "unsafe"


def gate_state(update: ResolvedUpdate) -> GateState:
    if update.verdict is None:
        return GateState.UNCHECKED
    return GateState.SAFE if update.verdict.safe else GateState.UNSAFE


@dataclass
class Partition:
    """Updates of one manifest or repository split by gate state."""

    safe: list[ResolvedUpdate] = field(default_factory=list)
    unsafe: list[ResolvedUpdate] = field(default_factory=list)
    unchecked: list[ResolvedUpdate] = field(default_factory=list)

    @property
    def blocked(self) -> list[ResolvedUpdate]:
        return self.unsafe + self.unchecked


def partition_updates(updates: Iterable[ResolvedUpdate]) -> Partition:
    partition = Partition()
    for update in updates:
        state = gate_state(update)
        if state is GateState.SAFE:
            partition.safe.append(update)
        elif state is GateState.UNSAFE:
            partition.unsafe.append(update)
        else:
            partition.unchecked.append(update)
    return partition


def group_by_tier(updates: Iterable[ResolvedUpdate]) -> dict[UpdateTier, list[ResolvedUpdate]]:
    """Group updates by tier, every tier present as a key."""
    groups: dict[UpdateTier, list[ResolvedUpdate]] = {tier: [] for tier in TIER_ORDER}
    for update in updates:
        groups[update.tier].append(update)
    return groups


def risk_level(updates: Iterable[ResolvedUpdate]) -> RiskLevel:
    """Overall risk of applying a set of updates.

    Unclassifiable updates count as major: nothing rules out a breaking change.
    """
    tiers = {update.tier for update in updates}
    if UpdateTier.MAJOR in tiers or UpdateTier.UNKNOWN in tiers:
        return RiskLevel.HIGH
    if UpdateTier.MINOR in tiers:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


async def assess_update(oracle: SecurityOracle, update: ResolvedUpdate, ecosystem: Ecosystem) -> ResolvedUpdate:
    """Move one update from UNCHECKED to SAFE or UNSAFE.

    Anything other than a well-formed verdict from the oracle, including an
    exception, leaves the update UNSAFE.
    """
    current = update.dependency.current_version or update.current_spec
    try:
        verdict = await oracle.assess_transition(update.name, current, update.latest_version, ecosystem)
    except Exception as e:
        logger.error("Security check failed for %s (%s -> %s): %s", update.name, current, update.latest_version, e)
        verdict = SecurityVerdict.fail_closed(f"Error checking security: {e}")

    if not isinstance(verdict, SecurityVerdict):
        logger.error("Security check for %s returned %r instead of a verdict", update.name, verdict)
        verdict = SecurityVerdict.fail_closed("Error checking security: malformed verdict")

    update.verdict = verdict
    logger.info(
        "%s %s -> %s: %s",
        update.name,
        current,
        update.latest_version,
        "safe" if verdict.safe else "unsafe",
    )
    return update


async def gate_updates(
    oracle: SecurityOracle,
    updates: Iterable[ResolvedUpdate],
    ecosystem: Ecosystem,
    allowed_tiers: Collection[UpdateTier] = TIER_ORDER,
) -> Partition:
    """Run the security gate over every update, one at a time.

    Updates in a tier the update policy does not allow are never sent to the
    oracle and stay unchecked.
    """
    updates = list(updates)
    for update in updates:
        if update.tier not in allowed_tiers:
            update.skip_reason = f"{update.tier.value} updates are disabled by the update policy"
            logger.info("Skipping %s: %s", update.name, update.skip_reason)
            continue
        await assess_update(oracle, update, ecosystem)
    return partition_updates(updates)
