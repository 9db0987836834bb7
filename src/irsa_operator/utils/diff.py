"""Pure diff engines for tags and CloudFront distribution settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional, Sequence


@dataclass(frozen=True)
class TagDiff:
    """Delta between live and desired tags."""

    to_add: dict[str, str] = field(default_factory=dict)
    to_remove: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_add and not self.to_remove


def tag_diff(live: Optional[Mapping[str, str]], desired: Optional[Mapping[str, str]]) -> TagDiff:
    """Compute the tag delta that turns ``live`` into ``desired``.

    Keys match case-sensitively. ``None`` and empty mappings are equivalent.

    Args:
        live: Tags currently on the resource
        desired: Tags the resource should carry

    Returns:
        TagDiff with every desired key missing or mismatched in ``live`` to add,
        and every live key absent from ``desired`` to remove (sorted)
    """
    live = live or {}
    desired = desired or {}

    to_add = {k: v for k, v in desired.items() if k not in live or live[k] != v}
    to_remove = sorted(k for k in live if k not in desired)
    return TagDiff(to_add=to_add, to_remove=to_remove)


def apply_tag_diff(live: Optional[Mapping[str, str]], diff: TagDiff) -> dict[str, str]:
    """Return ``live`` with ``diff`` applied."""
    result = dict(live or {})
    for key in diff.to_remove:
        result.pop(key, None)
    result.update(diff.to_add)
    return result


def merge_tags(*tag_sets: Optional[Mapping[str, str]]) -> dict[str, str]:
    """Merge tag sets keeping the first occurrence of each key."""
    merged: dict[str, str] = {}
    for tags in tag_sets:
        for key, value in (tags or {}).items():
            merged.setdefault(key, value)
    return merged


def tags_to_list(tags: Mapping[str, str]) -> list[dict[str, str]]:
    """Convert a tag mapping to the AWS ``[{"Key":..,"Value":..}]`` form."""
    return [{"Key": k, "Value": v} for k, v in tags.items()]


def tags_from_list(items: Optional[Iterable[Mapping[str, Any]]]) -> dict[str, str]:
    """Convert an AWS tag list into a mapping."""
    return {item["Key"]: item.get("Value", "") for item in items or []}


def distribution_needs_update(
    live_aliases: Optional[Sequence[str]],
    live_certificate_arn: Optional[str],
    desired_aliases: Optional[Sequence[str]],
    desired_certificate_arn: Optional[str],
) -> bool:
    """Decide whether a distribution's aliases or viewer certificate changed.

    Alias lists compare as plain lists, so order matters. A missing list and
    an empty one are equal, and so are a missing and an empty certificate ARN.

    Args:
        live_aliases: Aliases configured on the distribution
        live_certificate_arn: ACM certificate ARN on the distribution
        desired_aliases: Aliases the distribution should have
        desired_certificate_arn: Certificate ARN the distribution should use

    Returns:
        True if an update call is warranted
    """
    if list(live_aliases or []) != list(desired_aliases or []):
        return True
    return (live_certificate_arn or "") != (desired_certificate_arn or "")


def live_distribution_settings(distribution_config: Mapping[str, Any]) -> tuple[list[str], Optional[str]]:
    """Extract aliases and certificate ARN from a CloudFront DistributionConfig."""
    aliases = list((distribution_config.get("Aliases") or {}).get("Items") or [])
    certificate_arn = (distribution_config.get("ViewerCertificate") or {}).get("ACMCertificateArn")
    return aliases, certificate_arn
