"""
Provider HTTP client for speech synthesis.

Sends one synthesis request per call, maps provider responses into the
error taxonomy and retries transient failures with exponential backoff.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from loguru import logger
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from tts_player.config.loader import ProviderProfile, RetryPolicy
from tts_player.core.errors import (
    AuthenticationError,
    NetworkError,
    RateLimitError,
    TTSError,
    UnknownError,
    should_retry,
)
from tts_player.storage.models import AccountInfo


def parse_retry_after(headers: Mapping[str, str]) -> Optional[int]:
    """Read an integer retry-after header, ignoring anything else."""
    value = headers.get("retry-after")
    if value is None:
        return None
    try:
        return int(value.strip())
    except ValueError:
        return None


def classify_response(
    status_code: int,
    headers: Mapping[str, str],
    body: str
) -> Optional[TTSError]:
    """Map a provider response to an error, or None on success.

    Args:
        status_code: HTTP status of the response
        headers: Response headers
        body: Response body decoded as text (only used for diagnostics)

    Returns:
        The TTSError describing the failure, or None for 2xx responses
    """
    if 200 <= status_code < 300:
        return None
    if status_code in (401, 403):
        return AuthenticationError(body)
    if status_code == 429:
        return RateLimitError(parse_retry_after(headers))
    if status_code >= 500:
        return NetworkError(f"HTTP {status_code}: {body}")
    return UnknownError(f"HTTP {status_code}: {body}", status_code=status_code, body=body)


def _is_retryable(exception: BaseException) -> bool:
    return isinstance(exception, TTSError) and should_retry(exception)


class SpeechClient:
    """HTTP client for one TTS provider profile.

    Never batches: each synthesize call sends exactly one request. Chunk
    sequencing belongs to the pipeline.
    """

    def __init__(
        self,
        profile: ProviderProfile,
        api_key: Optional[str],
        http_client: Optional[httpx.Client] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize the client.

        Args:
            profile: Provider profile describing the endpoint
            api_key: Provider API key (required)
            http_client: Optional preconfigured httpx client; requests still carry the profile timeout
            retry_policy: Backoff settings (defaults to 3 attempts, 1s base)
            sleep: Function used to wait between attempts

        Raises:
            AuthenticationError: If api_key is missing/empty
        """
        if not api_key or not api_key.strip():
            raise AuthenticationError(f"{profile.api_key_env} environment variable not set")

        self.profile = profile
        self.api_key = api_key
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep
        self._owns_http = http_client is None
        self._http = http_client or httpx.Client(timeout=profile.timeout)
        self.last_attempt_count = 0

    def __enter__(self) -> "SpeechClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def _headers(self, accept: str) -> Dict[str, str]:
        headers = self.profile.auth_headers(self.api_key)
        headers["Accept"] = accept
        return headers

    def build_request(self, text: str, voice: str, model: str) -> httpx.Request:
        """Build the synthesis request for the profile's endpoint shape."""
        profile = self.profile
        body: Dict[str, Any] = {
            profile.text_field: text,
            profile.model_field: model,
        }
        if profile.voice_field:
            body[profile.voice_field] = voice

        params = {}
        if profile.output_format_in_query:
            params[profile.output_format_field] = profile.output_format
        else:
            body[profile.output_format_field] = profile.output_format

        return self._http.build_request(
            "POST",
            profile.speech_url(voice),
            json=body,
            params=params,
            headers=self._headers("audio/mpeg"),
            timeout=profile.timeout,
        )

    def _raise_for_status(self, response: httpx.Response) -> None:
        # Audio bodies are only decoded when they carry an error message.
        if response.is_success:
            return
        logger.debug(
            "Provider {provider} returned HTTP {status}",
            provider=self.profile.name,
            status=response.status_code,
        )
        raise classify_response(response.status_code, response.headers, response.text)

    def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            return self._http.send(request)
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out after {self.profile.timeout:g}s: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkError(f"Failed to send request: {e}") from e

    def synthesize(self, text: str, voice: str, model: Optional[str] = None) -> bytes:
        """Generate audio for one piece of text.

        Args:
            text: Text to speak, already within the provider limit
            voice: Voice identifier
            model: Model identifier (defaults to the profile's model)

        Returns:
            Raw audio bytes as returned by the provider

        Raises:
            AuthenticationError: Credentials rejected
            RateLimitError: Request throttled
            NetworkError: Timeout, transport failure or server error
            UnknownError: Any other non-success response
        """
        request = self.build_request(text, voice, model or self.profile.default_model)
        response = self._send(request)

        self._raise_for_status(response)
        return response.content

    def synthesize_with_retry(self, text: str, voice: str, model: Optional[str] = None) -> bytes:
        """Generate audio, retrying transient failures with backoff.

        Authentication and rate limit errors are raised on first occurrence.
        Other errors are retried until the attempt budget is spent, after
        which the last error is raised unchanged.
        """
        policy = self.retry_policy
        retryer = Retrying(
            stop=stop_after_attempt(policy.max_attempts),
            wait=wait_exponential(multiplier=policy.base_delay),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            for attempt in retryer:
                with attempt:
                    self.last_attempt_count = attempt.retry_state.attempt_number
                    return self.synthesize(text, voice, model)
        except TTSError as error:
            if should_retry(error):
                logger.error(
                    "Giving up after {attempts} attempts: {error}",
                    attempts=self.last_attempt_count,
                    error=error,
                )
            raise

    def _log_retry(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "Attempt {attempt}/{attempts} failed: {error}. Retrying in {delay:g}s",
            attempt=retry_state.attempt_number,
            attempts=self.retry_policy.max_attempts,
            error=retry_state.outcome.exception(),
            delay=retry_state.next_action.sleep,
        )

    def fetch_account_info(self) -> Optional[AccountInfo]:
        """Fetch subscription status from providers that expose one.

        Returns:
            AccountInfo, or None for pay-per-use profiles without an endpoint

        Raises:
            TTSError: Classified provider or transport failure
        """
        url = self.profile.account_url()
        if url is None:
            return None

        request = self._http.build_request(
            "GET",
            url,
            headers=self._headers("application/json"),
            timeout=self.profile.timeout,
        )
        response = self._send(request)
        self._raise_for_status(response)

        try:
            data = response.json()
            limit = int(data["character_limit"])
            used = int(data["character_count"])
            reset_unix = data.get("next_character_count_reset_unix")
            tier = str(data.get("tier", "unknown"))
        except (ValueError, KeyError, TypeError) as e:
            raise UnknownError(
                f"Unexpected subscription response: {e}",
                status_code=response.status_code,
                body=response.text,
            ) from e

        now = datetime.now()
        return AccountInfo(
            subscription_tier=tier,
            character_limit=limit,
            character_used=used,
            characters_remaining=max(limit - used, 0),
            reset_date=datetime.fromtimestamp(reset_unix) if reset_unix else now,
            last_updated=now,
        )
