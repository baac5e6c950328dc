

from .confluence_fusion import ConfluenceFusion
from .confluence_engine import ConfluenceDecision, ConfluenceEngine

__all__ = [
    "ConfluenceFusion",
    "ConfluenceDecision",
    "ConfluenceEngine"
]
