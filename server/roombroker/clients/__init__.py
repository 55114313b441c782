"""Clients for upstream suppliers, the downstream channel and notifications."""
