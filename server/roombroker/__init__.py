"""Hotel inventory acquisition and channel reconciliation service."""
