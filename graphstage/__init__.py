"""
graphstage - Graph pipeline compiler

Lowers ordered graph operations into the shortest chain of batch stages,
wires the stages through intermediate storage and runs them in order.
"""

__version__ = "0.1.0"


__all__ = ["GraphStageConfig", "load_config"]

from .config import GraphStageConfig, load_config
