"""
Upstream Sync - keep a forked repository in step with its upstream source.

This package sets up the upstream remote, fetches it and merges or rebases
the current branch onto the upstream branch, stashing local changes when
asked to.
"""

__version__ = "1.0.0"
