"""
FastAPI dependency providers. The collaborators are built once in the app
lifespan and kept on ``app.state``; tests swap them via ``dependency_overrides``.
"""
from typing import TYPE_CHECKING

from fastapi import Request

if TYPE_CHECKING:
    from auth import TokenService
    from databases_sql import DocumentStore
    from payments import StripeGateway


def get_store(request: Request) -> "DocumentStore":
    return request.app.state.store


def get_token_service(request: Request) -> "TokenService":
    return request.app.state.tokens


def get_gateway(request: Request) -> "StripeGateway":
    return request.app.state.gateway
