"""Business logic services package.

Contains affiliate link generation and tracking, the SQLite repositories,
the deals backend client with its Redis cache, data synchronisation and the
health, monitoring and stress test services.
"""
