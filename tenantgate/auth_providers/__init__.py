"""Pluggable authentication providers."""
