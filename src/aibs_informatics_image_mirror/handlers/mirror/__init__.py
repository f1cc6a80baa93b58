"""Incremental registry mirror: repository sweep, tag selection, digest skip and transfer."""
