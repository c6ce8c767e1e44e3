"""Building blocks for a TCP and Redis proxy: RESP codec, buffered reader,
health checkers, load balancers, connection wrapper and compressor registry."""

__version__ = "0.1.0"