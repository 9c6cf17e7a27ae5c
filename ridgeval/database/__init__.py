"""Reference database construction."""
