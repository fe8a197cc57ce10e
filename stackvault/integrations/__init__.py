"""Adapters connecting stackvault ports to external systems."""
