"""HTTP API for triggering syncs and reading their status."""
