"""Sync layer: message building, protocol dispatch, gossip and scheduling."""
