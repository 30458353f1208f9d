from propgrid_offline.gateway.server import create_app

__all__ = ["create_app"]
