"""hostbridge: SSH session multiplexing, uploads and GitHub provisioning."""

__version__ = "0.1.0"
