"""
API route handlers for the ASO data gateway.

Routers:
    aso_data: POST /aso-data and GET /aso-data/traffic-sources
"""

from aso_gateway.api.aso_data import router as aso_data_router

__all__ = ['aso_data_router']
