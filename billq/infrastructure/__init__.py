"""Infrastructure - settings, database, locks and idempotency keys"""
