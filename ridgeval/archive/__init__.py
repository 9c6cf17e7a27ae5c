"""Template archive/manifest codec and directory sharding."""
