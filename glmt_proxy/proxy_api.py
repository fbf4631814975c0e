"""
Proxy API endpoints
"""

from fastapi import APIRouter, Request

from .services.proxy_service import ProxyService

# 所有路径、所有方法都交给 ProxyService，非 POST 由其返回 405
ACCEPTED_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]


def create_router(service: ProxyService) -> APIRouter:
    router = APIRouter()

    @router.api_route("/{path:path}", methods=ACCEPTED_METHODS, include_in_schema=False)
    async def proxy_messages(request: Request, path: str = ""):
        """Translate one Anthropic Messages call through the upstream"""
        return await service.handle(request)

    return router
