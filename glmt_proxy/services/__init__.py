"""Service layer: request pipeline, upstream client and response conversion."""

from .proxy_service import ProxyService
from .response_transformer import ResponseTransformer
from .upstream_client import UpstreamClient

__all__ = [
    "ProxyService",
    "ResponseTransformer",
    "UpstreamClient",
]
