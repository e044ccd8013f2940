"""State/store layer.

This package is the single source of truth for how records arriving from
enrichment polling and full refetches are merged into one ordered,
de-duplicated view.
"""
