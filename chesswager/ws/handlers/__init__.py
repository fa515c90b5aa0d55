from chesswager.ws.handlers.base import BaseHandler
from chesswager.ws.handlers.chat import ChatHandler
from chesswager.ws.handlers.game import GameHandler
from chesswager.ws.handlers.system import SystemHandler

__all__ = ["BaseHandler", "ChatHandler", "GameHandler", "SystemHandler"]
