"""
GCN Alerts
Decodes GCN gamma-ray burst notices from the multicast feed, filters them and
starts the configured alert script. Also relays raw notice packets over TCP.
"""

__version__ = "1.0.0"
