"""
Speaker Discovery Module

Finds multiroom speakers on the local network with an SSDP multicast probe
and a /24 TCP sweep, and keeps a registry of the speakers found.
"""

__version__ = "1.0.0"
__author__ = "Speaker Discovery Team"
