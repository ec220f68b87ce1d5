"""HTTP API for the booking engine."""
