"""
Core modules for TTS Player.

This package contains the speech generation pipeline: chunking,
validation, audio assembly, cost estimation and orchestration.
"""
