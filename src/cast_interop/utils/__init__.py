"""Encoding, decoding and RPC utilities for the interop relay."""
