"""Domain layer: identity links, reconciliation and connector orchestration."""
