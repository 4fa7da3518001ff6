"""
SDK for TTS Player.

Provides programmatic access to the speech provider HTTP API.
"""

from .speech_client import SpeechClient, classify_response

__all__ = ["SpeechClient", "classify_response"]
