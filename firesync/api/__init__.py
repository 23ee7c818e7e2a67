"""HTTP API for triggering syncs."""
