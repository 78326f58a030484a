"""panewatch - unattended tmux pane supervisor.

Infers the status of assistant sessions running in tmux panes and keeps them
moving: keepalives, clearing of idle panes and status reports.
"""

__version__ = "0.1.0"
