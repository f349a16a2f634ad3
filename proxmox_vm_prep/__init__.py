"""
Proxmox VM Prep
---------------

Prepares a Debian VM for use as a Proxmox template (``--prep``) and gives a
freshly cloned VM its own identity (``--post-clone``). Every step detects
whether it already ran, so either phase can be re-run safely after a partial
failure.
"""

__version__ = "1.0.0"
