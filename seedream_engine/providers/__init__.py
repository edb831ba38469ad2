"""Remote image providers."""
