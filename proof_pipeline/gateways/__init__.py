"""Capability gateways with mock fallback and quota circuit breaking."""
