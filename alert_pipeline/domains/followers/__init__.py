"""Followers domain package (eligible recipient resolution)."""
