"""Infrastructure: persistence, in-memory backends, identity provider, cache, security."""
