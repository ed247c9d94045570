"""Durable stores: offline queue and proof store."""
