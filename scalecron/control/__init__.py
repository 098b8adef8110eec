"""Control-plane client and action dispatch."""

from scalecron.control.client import ControlPlaneClient, Database, Project
from scalecron.control.dispatcher import ActionDispatcher

__all__ = ["ActionDispatcher", "ControlPlaneClient", "Database", "Project"]
