"""Orchestrator package - batches uploads into commits."""
from .core import PublishOrchestrator
from .models import AliasCopy, ScheduledUpload
from .path_tree import PathNode, PathTree
from .transaction import PublishTransaction

__all__ = [
    "PublishOrchestrator",
    "PublishTransaction",
    "PathTree",
    "PathNode",
    "ScheduledUpload",
    "AliasCopy",
]
