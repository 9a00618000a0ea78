"""Tenant control plane: tenant-scoped authorization and membership lifecycle."""
