"""Simulated RPC network, linearizability checking, a key/value client and MapReduce."""

__version__ = "0.1.0"