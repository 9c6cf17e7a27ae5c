"""Result logging and downstream log collection."""
