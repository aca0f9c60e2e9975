"""
Retention Enforcer.

Clears raw content (description, raw_payload) from processed activities
while keeping the fingerprint, processed flag and identifying fields, so
deduplication keeps working after the purge. Time entries are never touched:
they are business records retained independently of activity content.

Triggers:
- right after a processing run, for users with delete_raw_after_processing
- on a schedule, for activities older than the user's retention_days

Usage:
    # Scheduled cleanup (cron / Cloud Scheduler)
    python -m billq.storage.retention --dry-run
    python -m billq.storage.retention --user alice
"""

from __future__ import annotations

import argparse
from datetime import datetime, timedelta

from billq.activities.models import utc_now
from billq.infrastructure.database import db_transaction, get_db_connection
from billq.observability.logging import get_logger
from billq.observability.telemetry import counter
from billq.preferences.models import RetentionPolicy
from billq.preferences.repository import PreferencesRepository

logger = get_logger(__name__)

_PURGEABLE = (
    "user_id = ? AND processed = 1 AND raw_purged_at IS NULL "
    "AND (description IS NOT NULL OR raw_payload IS NOT NULL)"
)


def _purge(user_id: str, extra_where: str, params: tuple, now: datetime, dry_run: bool) -> int:
    where = f"{_PURGEABLE}{extra_where}"

    if dry_run:
        with get_db_connection() as conn:
            row = conn.execute(
                f"SELECT COUNT(*) FROM activities WHERE {where}", (user_id, *params)
            ).fetchone()
        return row[0]

    with db_transaction() as conn:
        cursor = conn.execute(
            f"""
            UPDATE activities
            SET description = NULL, raw_payload = NULL, raw_purged_at = ?
            WHERE {where}
            """,
            (now.isoformat(), user_id, *params),
        )
        return cursor.rowcount


def enforce_retention(
    user_id: str,
    policy: RetentionPolicy,
    now: datetime | None = None,
    dry_run: bool = False,
) -> dict[str, int]:
    """
    Apply one user's retention policy.

    Args:
        policy: The user's retention policy
        now: Reference time for the retention window (default: current UTC time)
        dry_run: Count what would be purged without changing anything

    Returns:
        {"processed_purged": int, "expired_purged": int}
    """
    now = now or utc_now()
    stats = {"processed_purged": 0, "expired_purged": 0}
    prefix = "[DRY RUN] " if dry_run else ""

    # Purging every processed activity already covers any retention window
    if policy.delete_raw_after_processing:
        stats["processed_purged"] = _purge(user_id, "", (), now, dry_run)

    elif policy.retention_days >= 0:
        cutoff = now - timedelta(days=policy.retention_days)
        stats["expired_purged"] = _purge(
            user_id, " AND created_at < ?", (cutoff.isoformat(),), now, dry_run
        )

    purged = stats["processed_purged"] + stats["expired_purged"]
    if purged:
        if not dry_run:
            counter("retention.purged", purged)
        logger.info(
            "%sPurged raw content from %d activities for user %s",
            prefix,
            purged,
            user_id,
            extra={
                "retention_days": policy.retention_days,
                "delete_raw_after_processing": policy.delete_raw_after_processing,
                "dry_run": dry_run,
            },
        )
    return stats


def cleanup_all_users(
    now: datetime | None = None,
    dry_run: bool = False,
    user_id: str | None = None,
) -> dict[str, int]:
    """
    Scheduled retention pass over every user with activities.

    Users who never stored preferences get the default policy; no
    preference row is created for them here.
    """
    query = "SELECT DISTINCT user_id FROM activities"
    params: tuple = ()
    if user_id:
        query += " WHERE user_id = ?"
        params = (user_id,)

    with get_db_connection() as conn:
        user_ids = [row[0] for row in conn.execute(query, params).fetchall()]

    totals = {"users": 0, "processed_purged": 0, "expired_purged": 0}
    for uid in user_ids:
        preferences = PreferencesRepository.get(uid)
        policy = preferences.retention_policy if preferences else RetentionPolicy()
        stats = enforce_retention(uid, policy, now=now, dry_run=dry_run)
        totals["users"] += 1
        totals["processed_purged"] += stats["processed_purged"]
        totals["expired_purged"] += stats["expired_purged"]

    logger.info("Retention cleanup complete", extra={**totals, "dry_run": dry_run})
    return totals


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Purge raw activity content per retention policy")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report counts without changing anything",
    )
    parser.add_argument("--user", help="Only enforce retention for this user id")
    args = parser.parse_args(argv)

    totals = cleanup_all_users(dry_run=args.dry_run, user_id=args.user)
    print(
        f"{'[DRY RUN] ' if args.dry_run else ''}users={totals['users']} "
        f"processed_purged={totals['processed_purged']} "
        f"expired_purged={totals['expired_purged']}"
    )


if __name__ == "__main__":
    main()
