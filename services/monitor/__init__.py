"""Live monitor service."""
