# Tier-precedence merge of same-named servers
from collections.abc import Sequence
from dataclasses import dataclass, field

from mcpdoctor.models import TIER_ORDER, ClassifiedServer, ConflictRecord, Tier


@dataclass(frozen=True)
class MergeResult:
    """Effective servers plus the conflicts that were resolved.

    ABOUTME: effective has exactly one entry per distinct server name
    """
    effective: list[ClassifiedServer] = field(default_factory=list)
    conflicts: list[ConflictRecord] = field(default_factory=list)


def merge_servers(
    servers: Sequence[ClassifiedServer],
    tier_order: Sequence[Tier] = TIER_ORDER,
) -> MergeResult:
    """Resolve same-named declarations across tiers, first writer wins.

    ABOUTME: Stable sort by tier position, then keep the first occurrence of each name
    ABOUTME: Later occurrences are recorded as shadowed and never probed
    ABOUTME: Returns new lists (doesn't mutate inputs)

    Args:
        servers: Every classified server from every tier
        tier_order: Precedence order, earliest wins

    Returns:
        MergeResult with effective servers and ConflictRecords

    Examples:
        >>> a = StdioServer(name="a", tier="user", source=Path("u"), command="npx")
        >>> b = StdioServer(name="a", tier="managed-mcp", source=Path("m"), command="uvx")
        >>> result = merge_servers([a, b])
        >>> result.effective[0].tier
        'managed-mcp'
        >>> result.conflicts[0].shadowed
        ('user',)
    """
    rank = {tier: index for index, tier in enumerate(tier_order)}
    ordered = sorted(servers, key=lambda s: rank.get(s.tier, len(rank)))

    groups: dict[str, list[ClassifiedServer]] = {}
    for server in ordered:
        groups.setdefault(server.name, []).append(server)

    effective = [members[0] for members in groups.values()]
    conflicts = [
        ConflictRecord(
            name=name,
            occurrences=tuple((s.tier, s.source) for s in members),
            winner=members[0].tier,
            shadowed=tuple(s.tier for s in members[1:]),
        )
        for name, members in groups.items()
        if len(members) > 1
    ]

    return MergeResult(effective=effective, conflicts=conflicts)
