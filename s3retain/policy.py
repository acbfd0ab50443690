# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3retain Policy - Restic-style time-bucket retention rules.

Backups are visited newest first. For each one the rules are tried in a
fixed order and the first rule that fires keeps it:

1. keep_last    - the N most recent backups
2. keep_hourly  - one per calendar hour  (within N hours)
3. keep_daily   - one per calendar day   (within N days)
4. keep_weekly  - one per ISO week       (within N weeks)
5. keep_monthly - one per calendar month (within N x 30 days)
6. keep_yearly  - one per calendar year  (within N x 365 days)

A bucket is claimed by the first (newest) backup that reaches it inside the
tier's window. Backups no rule keeps become delete candidates for the
safety net in s3retain.executor.

Everything here is pure: no I/O, no clock reads. ``now`` is passed in.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List

from s3retain.catalog import BackupArtifact, sort_newest_first
from s3retain.config import RetentionPolicy


class Verdict(str, Enum):
    """Outcome for a single backup."""

    KEEP = "keep"
    DELETE = "delete"


class KeepReason(str, Enum):
    """Why a backup survived."""

    KEEP_LAST = "keep_last"
    KEEP_HOURLY = "keep_hourly"
    KEEP_DAILY = "keep_daily"
    KEEP_WEEKLY = "keep_weekly"
    KEEP_MONTHLY = "keep_monthly"
    KEEP_YEARLY = "keep_yearly"
    MIN_BACKUPS_SAFETY = "min_backups_safety"


class Tier(str, Enum):
    """Bucketed retention tiers, in evaluation order."""

    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @property
    def seconds(self) -> int:
        # Months and years are fixed 30/365-day approximations
        return _TIER_SECONDS[self]

    @property
    def bucket_format(self) -> str:
        return _TIER_FORMATS[self]

    @property
    def reason(self) -> KeepReason:
        return KeepReason(f"keep_{self.value}")

    def configured(self, policy: RetentionPolicy) -> int:
        return getattr(policy, f"keep_{self.value}")


_TIER_SECONDS = {
    Tier.HOURLY: 3600,
    Tier.DAILY: 86400,
    Tier.WEEKLY: 604800,
    Tier.MONTHLY: 2592000,
    Tier.YEARLY: 31536000,
}

_TIER_FORMATS = {
    Tier.HOURLY: "%Y-%m-%d-%H",
    Tier.DAILY: "%Y-%m-%d",
    Tier.WEEKLY: "%G-W%V",
    Tier.MONTHLY: "%Y-%m",
    Tier.YEARLY: "%Y",
}


@dataclass(frozen=True)
class RetentionDecision:
    """Verdict for one backup in one run."""

    artifact: BackupArtifact
    verdict: Verdict
    reason: KeepReason | None = None
    bucket: str | None = None

    @property
    def kept(self) -> bool:
        return self.verdict == Verdict.KEEP

    @property
    def path(self) -> str:
        return self.artifact.path


def bucket_key(tier: Tier, instant: datetime) -> str:
    """Canonical UTC bucket key of ``instant`` for ``tier``."""
    if tier == Tier.WEEKLY:
        iso = instant.isocalendar()
        return f"{iso.year:04d}-W{iso.week:02d}"
    return instant.strftime(tier.bucket_format)


def is_within_window(instant: datetime, count: int, tier: Tier, now: datetime) -> bool:
    """
    True if ``instant`` is at most ``count`` tier periods before ``now``.

    The boundary is inclusive; instants after ``now`` are always inside.
    """
    age = (now - instant).total_seconds()
    return age <= count * tier.seconds


def evaluate_retention(
    artifacts: Iterable[BackupArtifact],
    policy: RetentionPolicy,
    now: datetime,
) -> List[RetentionDecision]:
    """
    Decide KEEP or DELETE for every backup.

    Args:
        artifacts: Backups to evaluate (re-sorted newest first)
        policy: Tier counts to apply
        now: Evaluation instant (timezone-aware UTC)

    Returns:
        One decision per backup, newest first. Each kept backup carries
        exactly one reason: the first rule in priority order that fired.
    """
    ordered = sort_newest_first(artifacts)
    claimed: Dict[Tier, Dict[str, BackupArtifact]] = {tier: {} for tier in Tier}
    decisions: List[RetentionDecision] = []

    for index, artifact in enumerate(ordered):
        if index < policy.keep_last:
            decisions.append(
                RetentionDecision(artifact, Verdict.KEEP, KeepReason.KEEP_LAST)
            )
            continue

        decision = None
        for tier in Tier:
            count = tier.configured(policy)
            if count == 0:
                continue
            if not is_within_window(artifact.captured_at, count, tier, now):
                continue

            key = bucket_key(tier, artifact.captured_at)
            if key in claimed[tier]:
                continue

            claimed[tier][key] = artifact
            decision = RetentionDecision(artifact, Verdict.KEEP, tier.reason, key)
            break

        decisions.append(decision or RetentionDecision(artifact, Verdict.DELETE))

    return decisions
