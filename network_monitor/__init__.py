"""
Network Monitor - real-time packet capture and classification

Decodes captured frames down to the application layer, attributes them to
local processes, tags them with a traffic description and raises alerts for
watchlisted hosts and addresses.
"""

__version__ = "1.0.0"
__author__ = "Network Team"
