"""Lambda proxy in front of the Google Tasks API."""

from smart_todo.proxy.handler import handler

__all__ = ["handler"]
