"""Core: configuration, interfaces and the authorization engine."""
