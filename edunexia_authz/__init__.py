"""EdunexIA authorization core: RBAC permissions with ABAC conditions."""

__version__ = "0.1.0"
