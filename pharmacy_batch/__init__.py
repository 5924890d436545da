"""
pharmacy_batch -- Scheduled inventory jobs.

Provides a task registry, pure cron evaluation, and an in-process polling
scheduler that runs the inventory scan, alert auto-resolve and current-stock
reconciliation tasks on their configured schedules or on demand.

Architecture:
    pharmacy_batch/ is a top-level package.  Nothing in kernel/, engines/
    or services/ imports from pharmacy_batch.
"""
