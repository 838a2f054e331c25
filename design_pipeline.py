"""
End-to-end generation: screenshots + description -> editable screens.

Runs the visual analyzer, the prompt analyzer and the layout generator, then
resolves the result into screens. Generation can run on a worker thread; only
the newest request is allowed to populate the session.
"""
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ai_clients import CompletionClient, get_prompt_client, get_text_client, get_vision_client
from ai_layout_generator import generate_layout_with_fallback
from design_schema import AIResponse, PromptAnalysis, Screen, ScreenshotAnalysis
from fallback_generator import gradient_for_description
from layout_templates import resolve_screens
from prompt_analyzer import analyze_prompt
from rate_limiter import RateLimiter, get_shared_limiter
from screen_model import DesignSession
from screenshot_analyzer import analyze_screenshots


logger = logging.getLogger(__name__)

NOTICE_BASIC_ANALYSIS = "Using basic color analysis"
NOTICE_FALLBACK_LAYOUT = "AI unavailable, using built-in layouts"
NOTICE_STALE_RESULT = "A newer generation was started, so this result was discarded"


def environment_clients() -> Dict[str, Optional[CompletionClient]]:
    """Clients for whichever API keys are configured, keyed as DesignPipeline arguments"""
    return {
        "text_client": get_text_client(),
        "vision_client": get_vision_client(),
        "prompt_client": get_prompt_client(),
    }


@dataclass
class GenerationResult:
    request_id: int
    screens: List[Screen]
    ai_response: AIResponse
    analysis: ScreenshotAnalysis
    prompt_analysis: Optional[PromptAnalysis] = None
    used_ai_analysis: bool = False
    used_fallback: bool = False
    notices: List[str] = field(default_factory=list)


class GenerationTracker:
    """Hands out increasing request ids and remembers the newest one"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest = 0

    def next_id(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    @property
    def latest(self) -> int:
        return self._latest

    def is_current(self, request_id: int) -> bool:
        return request_id == self._latest


class DesignPipeline:
    """One per user session; its tracker decides which result may populate the session"""

    def __init__(
        self,
        text_client: Optional[CompletionClient] = None,
        vision_client: Optional[CompletionClient] = None,
        prompt_client: Optional[CompletionClient] = None,
        limiter: Optional[RateLimiter] = None,
        sleep=time.sleep,
        max_workers: int = 2,
    ) -> None:
        self.text_client = text_client
        self.vision_client = vision_client
        self.prompt_client = prompt_client
        self.limiter = limiter or get_shared_limiter()
        self.sleep = sleep
        self.tracker = GenerationTracker()
        self._executor = ThreadPoolExecutor(max_workers=max_workers)

    def generate(self, prompt: str, screenshots: Sequence[str], request_id: Optional[int] = None) -> GenerationResult:
        """
        Run the whole pipeline synchronously.

        Never fails because of the AI services: every AI step has a local
        fallback, reported through `notices`.

        Args:
            prompt: The user's app description
            screenshots: Uploaded screenshots as data URIs
            request_id: Id from the tracker; a new one is issued if omitted

        Raises:
            ValueError: If the description is empty
        """
        if not prompt or not prompt.strip():
            raise ValueError("Describe your app to generate screenshots")
        if request_id is None:
            request_id = self.tracker.next_id()

        notices = []
        analysis, used_ai_analysis = analyze_screenshots(
            screenshots, self.vision_client, limiter=self.limiter, sleep=self.sleep
        )
        if screenshots and not used_ai_analysis:
            notices.append(NOTICE_BASIC_ANALYSIS)

        prompt_analysis = analyze_prompt(prompt, self.prompt_client, limiter=self.limiter, sleep=self.sleep)

        ai_response, used_fallback = generate_layout_with_fallback(
            prompt,
            screenshot=screenshots[0] if screenshots else None,
            analysis_context=analysis,
            prompt_analysis=prompt_analysis,
            text_client=self.text_client,
            vision_client=self.vision_client,
            limiter=self.limiter,
            sleep=self.sleep,
        )
        if used_fallback:
            notices.append(NOTICE_FALLBACK_LAYOUT)

        # Built-in layouts take their gradient from the description
        gradient = gradient_for_description(prompt) if used_fallback else None
        screens = resolve_screens(ai_response, list(screenshots), analysis, gradient)
        logger.info("Request %d produced %d screens (fallback=%s)", request_id, len(screens), used_fallback)

        return GenerationResult(
            request_id=request_id,
            screens=screens,
            ai_response=ai_response,
            analysis=analysis,
            prompt_analysis=prompt_analysis,
            used_ai_analysis=used_ai_analysis,
            used_fallback=used_fallback,
            notices=notices,
        )

    def submit(self, prompt: str, screenshots: Sequence[str]) -> Future:
        """Start generation on a worker thread; the returned future yields a GenerationResult"""
        request_id = self.tracker.next_id()
        return self._executor.submit(self.generate, prompt, list(screenshots), request_id)

    def commit(self, result: GenerationResult, session: DesignSession) -> bool:
        """
        Populate the session with a result unless a newer request was issued.

        Returns:
            True if the session was updated
        """
        if not self.tracker.is_current(result.request_id):
            logger.info("Discarding stale result %d (latest is %d)", result.request_id, self.tracker.latest)
            return False
        session.replace_screens(result.screens)
        return True

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
