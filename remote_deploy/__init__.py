"""Provision a remote Ubuntu host and deploy one Dockerized app behind Nginx."""

__version__ = "0.1.0"
