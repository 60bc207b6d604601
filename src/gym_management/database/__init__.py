"""
MongoDB access layer.

`DatabaseManager` owns the Motor client. One instance is constructed by the service container and
handed to every service that needs a collection; nothing in the package imports a global client.
"""

from gym_management.database.manager import DatabaseManager

__all__ = ["DatabaseManager"]
