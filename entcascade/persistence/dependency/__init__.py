"""
Cascade dependency graph implementation.

This module provides a read-only view of the entities a cascade would reach
and detects circular references without modifying the entities.
"""
from .graph import CascadeGraph, CycleStatus, GraphNode

__all__ = ["CascadeGraph", "CycleStatus", "GraphNode"]
