"""Messaging between customers and agents."""

from .gate import can_message, MessageService, MESSAGING_STATUSES

__all__ = ['can_message', 'MessageService', 'MESSAGING_STATUSES']
