"""
GCN Notice Generators
Build binary notice packets for testing and for the notice sender tool
"""

from .notice_generator import NoticePacketBuilder

__all__ = ['NoticePacketBuilder']
