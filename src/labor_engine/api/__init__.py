"""HTTP API for the labor engine."""
