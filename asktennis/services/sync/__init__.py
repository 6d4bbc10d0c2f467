"""
Tennis data sync.

Key components:
- engine: SyncEngine pulls provider snapshots and upserts them batch by batch
- name_normalizer: folds player and tournament names for matching
"""
