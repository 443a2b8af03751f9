"""
FIPE upstream access.

Modules:
    throttle: Adaptive inter-request interval (ThrottleController)
    client: Async HTTP client for the FIPE endpoints (FipeClient)

Usage:
    from fipe.client import FipeClient

    async with FipeClient() as client:
        periods = await client.list_periods()
"""

__all__ = [
    "FipeClient",
    "ThrottleController",
]
