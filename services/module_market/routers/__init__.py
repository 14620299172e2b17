"""Module market routers package"""

from services.module_market.routers import modules

__all__ = ['modules']
