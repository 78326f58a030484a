"""tmux integration for panewatch."""

from panewatch.tmux.backend import LibtmuxBackend

__all__ = ["LibtmuxBackend"]
