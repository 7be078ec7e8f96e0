"""Domain models and external request/response shapes."""
