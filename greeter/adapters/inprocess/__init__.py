"""
In-process adapter: calls between a client and server in the same process
"""

from .client import InProcessClient
from .server import InProcessServer

__all__ = ["InProcessClient", "InProcessServer"]
