"""
TTS Player.

Text-to-speech generation with transparent chunking and a usage ledger.
"""

__version__ = "0.1.0"
