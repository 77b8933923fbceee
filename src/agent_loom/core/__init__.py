"""Canonical store codecs, persistence and the provider adapter registry."""
