"""Transport - adapters that expose the runtime engine.

Classes:
    HTTPServer: aiohttp server for deploys, SSE progress and simulated requests.
"""

from archsim.transport.http import HTTPServer

__all__ = ["HTTPServer"]
