"""Event pipeline for the campus bike share.

This package processes checkout and return form submissions, providing:
- Fuzzy matching of typed bike names and hashes
- Cached operational settings loaded from the config store
- Typed loading of the bikes and users tables
- Validation and business-logic step chains
- Batched persistence of row writes
- A lock-guarded run state machine with metrics and notifications
"""
