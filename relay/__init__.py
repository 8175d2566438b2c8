"""Opaque message relay: stores and serves ciphertext it cannot read."""
