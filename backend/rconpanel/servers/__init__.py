"""Persistent store of game servers."""

from .queries import MatchState, ServerQueries

__all__ = ["MatchState", "ServerQueries"]
