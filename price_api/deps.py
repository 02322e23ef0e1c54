from fastapi import Request

from price_api.config import Settings
from price_api.gateway import PriceGateway


def get_gateway(request: Request) -> PriceGateway:
    return request.app.state.gateway


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
