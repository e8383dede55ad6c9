"""HTTP service for the analytics core."""
