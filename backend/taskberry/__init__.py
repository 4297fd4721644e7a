"""TaskBerry: role-hierarchical task tracking backend."""

__version__ = "1.0.0"
