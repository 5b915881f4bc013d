"""
Collaboration session relay.

Hosts and members exchange prompts, answers and feedback through live
sessions over WebSockets.
"""

__version__ = "0.1.0"
