"""Sender IP reputation."""

from .iptree import IPTree
from .resolver import ReputationResolver

__all__ = ["IPTree", "ReputationResolver"]
