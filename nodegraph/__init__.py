"""nodegraph - extensibility core for the node-graph editor."""

__version__ = "0.1.0"
__logo__ = "◇"
