import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, NoReturn, Optional

import httpx
from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

from app.core.config import Settings, settings as default_settings
from app.core.errors import ConfigurationError, LanguageModelError

logger = logging.getLogger(__name__)

STOP_SEQUENCES = ["</s>", "[/INST]"]

Sleep = Callable[[float], Awaitable[Any]]


class ModelLoadingError(Exception):
    """The inference service answered 503 while the model warms up"""


RETRYABLE_ERRORS = (ModelLoadingError, httpx.HTTPError, LanguageModelError, ValueError)


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    WAITING_FOR_MODEL_LOAD = "waiting_for_model_load"
    WAITING_BEFORE_RETRY = "waiting_before_retry"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


class GenerationRetry:
    """Retry bookkeeping for one ``generate`` call.

    Tracks the explicit RetryState and the last error that was not a loading
    response, which is what exhaustion reports.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self.state = RetryState.ATTEMPTING
        self.last_error: Optional[BaseException] = None

    def before(self, retry_state: RetryCallState) -> None:
        self.state = RetryState.ATTEMPTING
        logger.debug(f"Generation attempt {retry_state.attempt_number}/{self.settings.LLM_MAX_ATTEMPTS}")

    def after(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        attempts_left = self.settings.LLM_MAX_ATTEMPTS - retry_state.attempt_number
        if isinstance(error, ModelLoadingError):
            logger.info(f"Model is loading, retries left: {attempts_left}")
        else:
            self.last_error = error
            logger.error(f"Attempt failed, retries left: {attempts_left}: {error}")

    def wait(self, retry_state: RetryCallState) -> float:
        if isinstance(retry_state.outcome.exception(), ModelLoadingError):
            return self.settings.LLM_MODEL_LOADING_WAIT_SECONDS
        return self.settings.LLM_RETRY_WAIT_SECONDS

    def before_sleep(self, retry_state: RetryCallState) -> None:
        if isinstance(retry_state.outcome.exception(), ModelLoadingError):
            self.state = RetryState.WAITING_FOR_MODEL_LOAD
        else:
            self.state = RetryState.WAITING_BEFORE_RETRY

    def exhausted(self, retry_state: RetryCallState) -> NoReturn:
        self.state = RetryState.EXHAUSTED
        error = self.last_error
        if isinstance(error, LanguageModelError):
            raise error
        message = str(error) if error else "All retry attempts failed"
        raise LanguageModelError(message) from error


class TextGenerationClient:
    """Hugging Face text-generation inference client"""

    def __init__(
        self,
        settings: Settings = default_settings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings
        self.transport = transport
        self.sleep = sleep

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.HUGGINGFACE_API_TOKEN)

    def build_payload(self, prompt: str) -> Dict[str, Any]:
        return {
            "inputs": prompt,
            "options": {
                "wait_for_model": True,
                "use_cache": False,
            },
            "parameters": {
                "max_new_tokens": self.settings.LLM_MAX_NEW_TOKENS,
                "temperature": 0.7,
                "top_p": 0.95,
                "do_sample": True,
                "return_full_text": False,
                "repetition_penalty": 1.2,
                "length_penalty": 1.0,
                "stop": STOP_SEQUENCES,
                "truncation": True,
            },
        }

    async def generate_once(self, prompt: str) -> str:
        if not self.is_configured:
            raise ConfigurationError("API configuration error - Token not found")

        url = f"{self.settings.HUGGINGFACE_API_URL}/{self.settings.LLM_MODEL}"
        headers = {"Authorization": f"Bearer {self.settings.HUGGINGFACE_API_TOKEN}"}

        async with httpx.AsyncClient(
            timeout=self.settings.REQUEST_TIMEOUT * 4,
            transport=self.transport,
        ) as client:
            response = await client.post(url, json=self.build_payload(prompt), headers=headers)

        if response.status_code == 503:
            raise ModelLoadingError("Model is loading")

        if response.status_code != 200:
            logger.error(
                f"Hugging Face API error: status={response.status_code} "
                f"reason={response.reason_phrase} body={response.text[:500]} "
                f"headers={dict(response.headers)}"
            )
            raise LanguageModelError(
                f"Hugging Face API error: {response.reason_phrase} ({response.status_code})"
            )

        data = response.json()
        logger.debug(f"Received response from Hugging Face: {data}")

        item = data[0] if isinstance(data, list) and data else data
        text = item.get("generated_text") if isinstance(item, dict) else None
        if not isinstance(text, str):
            raise LanguageModelError("Hugging Face API returned no generated text")
        return text

    async def generate(self, prompt: str) -> str:
        """Generate with bounded attempts.

        A loading model waits LLM_MODEL_LOADING_WAIT_SECONDS, any other failure waits
        LLM_RETRY_WAIT_SECONDS; both consume one of LLM_MAX_ATTEMPTS attempts.
        """
        tracker = GenerationRetry(self.settings)
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.settings.LLM_MAX_ATTEMPTS),
            wait=tracker.wait,
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            before=tracker.before,
            after=tracker.after,
            before_sleep=tracker.before_sleep,
            retry_error_callback=tracker.exhausted,
            sleep=self.sleep,
        )

        result = await retrying(self.generate_once, prompt)
        tracker.state = RetryState.SUCCEEDED
        return result
