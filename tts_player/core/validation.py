"""
Input validation for speech requests.

Pure checks evaluated before any network call.
"""

from tts_player.config.loader import ProviderProfile
from .errors import ValidationError


def validate_text(text: str, profile: ProviderProfile) -> None:
    """Reject text the provider cannot take.

    Empty or whitespace-only text is always rejected. Overlong text is
    rejected only for profiles that do not delegate long text to chunking.

    Raises:
        ValidationError: If the text is empty or too long for the profile
    """
    if text is None or not text.strip():
        raise ValidationError("Text cannot be empty")

    if profile.reject_overlong and len(text) > profile.max_request_chars:
        raise ValidationError(
            f"Text is {len(text):,} characters, maximum is {profile.max_request_chars:,}"
        )


def is_valid_voice(voice_id: str, profile: ProviderProfile) -> bool:
    """Check a voice id against the profile's voice policy."""
    if not voice_id or not voice_id.strip():
        return False
    if profile.open_voice_catalog:
        return True
    return voice_id.strip() in profile.voices


def validate_voice(voice_id: str, profile: ProviderProfile) -> str:
    """Return the normalized voice id, or raise ValidationError if unsupported."""
    if not is_valid_voice(voice_id, profile):
        raise ValidationError(f"Invalid voice ID: {voice_id}")
    return voice_id.strip()
