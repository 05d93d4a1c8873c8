"""CLI module for nodegraph."""
