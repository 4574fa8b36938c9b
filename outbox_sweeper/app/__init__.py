"""Health endpoint and process wiring."""
