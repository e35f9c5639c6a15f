"""Simulated RPC network, a versioned key/value server with a sequential model, and a small MapReduce framework."""

__version__ = "0.1.0"