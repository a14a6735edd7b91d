"""Runtime configuration helpers for Ad Vault."""
