"""Application layer - use cases orchestrating the persistence layer."""
