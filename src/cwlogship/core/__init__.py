"""Core batching and delivery pipeline."""
