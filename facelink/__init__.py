"""Peer-to-peer face identity matching engine."""
