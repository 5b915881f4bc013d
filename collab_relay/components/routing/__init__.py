"""
Command routing components.
"""

from collab_relay.components.routing.router import MessageRouter, RoutingResult

__all__ = ["MessageRouter", "RoutingResult"]
