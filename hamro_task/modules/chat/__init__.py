"""
Chat module.

Workspace channels, direct conversations and the client-side message feed.
"""

from .models import Channel, ChannelMember, ChannelReadStatus, DMConversation, DMMessage, Message

__all__ = [
    "Channel",
    "ChannelMember",
    "ChannelReadStatus",
    "Message",
    "DMConversation",
    "DMMessage",
]
