"""Domain models, error taxonomy and filesystem helpers."""
