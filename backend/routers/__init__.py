"""
路由目录
"""

from . import websocket

__all__ = ["websocket"]
