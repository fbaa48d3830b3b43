"""
Firebase Cloud Messaging Integration Module
===========================================

Usage::

    from recovery.integrations.fcm import FirebaseCredentials, send_to_topic
"""

from .pushService import FirebaseCredentials, SendResult, is_configured, send_to_topic

__all__ = [
    "FirebaseCredentials",
    "SendResult",
    "is_configured",
    "send_to_topic",
]
