"""
Services module for tennis business logic.

This module organizes services into:
- provider: Sportradar client and snapshot types
- sync: Sync engine and name normalization
- cache: Process-wide query result cache
- query_resolver: Statistical lookups served through the cache
"""
