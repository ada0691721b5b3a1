"""Support+ backend: identity resolution and per-user catalog cache."""
