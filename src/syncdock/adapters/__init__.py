"""Adapters binding the synchronisation core to concrete systems."""
