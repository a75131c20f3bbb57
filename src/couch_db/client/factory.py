"""Transport factory for creating configured transports.

This module provides a factory function that creates the appropriate transport
based on configuration. It abstracts transport selection from the API layer.
"""

from .config import CouchConfig
from .transport import CouchTransport


def create_transport(config: CouchConfig | None = None, asynchronous: bool = False) -> CouchTransport:
    """Create appropriate transport based on configuration.

    Args:
        config: Client configuration. If None, loads from environment.
        asynchronous: Create the asyncio transport.  Calls must then be made
            with ``delay=True`` and completed with ``await result.run_async()``.

    Returns:
        Configured transport implementing CouchTransport protocol.

    Example:
        transport = create_transport()

        config = CouchConfig(server="http://db.example.com:5984", timeout=10)
        transport = create_transport(config, asynchronous=True)
    """
    config = config or CouchConfig()

    if asynchronous:
        from .http import AsyncHTTPTransport

        return AsyncHTTPTransport(config)

    from .http import HTTPTransport

    return HTTPTransport(config)
