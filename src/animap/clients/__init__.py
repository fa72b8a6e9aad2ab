"""Clients for the remote sources the pipeline reads from."""
