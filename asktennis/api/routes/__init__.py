"""
API routes.

- sync: sync status and forced sync (admin)
- stats: statistical lookups served through the query cache
"""
