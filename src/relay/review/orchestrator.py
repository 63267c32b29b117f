"""Review orchestrator driving one webhook delivery to a published review.

Stages: received → filtering → fetching_diff → prompting → generating
→ post_processing → publishing → completed.

Verification and filtering failures end the delivery before any GitHub
write. The two publishing writes (comment, pull request patch) are
independent: both are attempted, neither is rolled back, and a failure of
either ends the delivery in the failed stage with the partial outcome
recorded on the result.

The orchestrator holds no per-delivery state between calls. Everything a
delivery needs, its GitHub credential included, is passed down explicitly,
so concurrent deliveries for different repositories never share a token.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from src.relay.config import DiffMode, RelaySettings
from src.relay.events.emitter import EventEmitter
from src.relay.events.models import EventType, ReviewEvent
from src.relay.generation.base import GenerationBackend, GenerationBackendError, GenerationResult
from src.relay.github.client import GitHubAPIError, GitHubClient
from src.relay.registry.models import WebhookRegistration
from src.relay.registry.store import StorageError
from src.relay.retry import retry_on_unavailable
from src.relay.review.diff import format_changed_files, format_diff_for_prompt
from src.relay.review.models import (
    ErrorKind,
    GeneratedReview,
    ReviewRequest,
    ReviewResult,
    ReviewStage,
    classify_status,
    is_valid_transition,
)
from src.relay.review.parsing import format_comment, parse_generated_review
from src.relay.review.prompts import build_review_prompt
from src.relay.webhook.handler import WebhookHandler
from src.relay.webhook.models import PullRequestEvent
from src.relay.webhook.signature import (
    RegistrationNotFoundError,
    UnauthorizedError,
    WebhookAuthenticator,
)

logger = logging.getLogger(__name__)

PULL_REQUEST_EVENT = "pull_request"

EMPTY_DIFF_PLACEHOLDER = "(no textual changes)"


@dataclass
class ReviewOptions:
    """Tunables of the review flow.

    Attributes:
        diff_mode: Fetch the unified diff or the per-file patch listing.
        max_prompt_chars: Character budget for the diff part of the prompt.
        update_pull_request: Patch the PR title/body after commenting.
        min_review_chars: Richness threshold on body length.
        min_review_lines: Richness threshold on non-blank body lines.
        max_retries: Generation retries on HTTP 503.
        initial_delay: Seconds before the first generation retry.
        fallback_token: GitHub token used when a registration carries none.
    """

    diff_mode: DiffMode = DiffMode.DIFF
    max_prompt_chars: int = 12000
    update_pull_request: bool = True
    min_review_chars: int = 100
    min_review_lines: int = 3
    max_retries: int = 3
    initial_delay: float = 5.0
    fallback_token: str = ""

    @classmethod
    def from_settings(cls, settings: RelaySettings) -> "ReviewOptions":
        min_chars, min_lines = settings.richness_thresholds
        return cls(
            diff_mode=settings.diff_mode,
            max_prompt_chars=settings.max_prompt_chars,
            update_pull_request=settings.update_pull_request,
            min_review_chars=min_chars,
            min_review_lines=min_lines,
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay_seconds,
            fallback_token=settings.github_token,
        )


def error_kind_for(error: BaseException) -> ErrorKind:
    """Map an exception raised during processing to its ErrorKind."""
    if isinstance(error, UnauthorizedError):
        return ErrorKind.UNAUTHORIZED
    if isinstance(error, RegistrationNotFoundError):
        return ErrorKind.NOT_FOUND
    if isinstance(error, StorageError):
        return ErrorKind.STORAGE
    if isinstance(error, (GitHubAPIError, GenerationBackendError)):
        return classify_status(error.status_code)
    return ErrorKind.INTERNAL


class ReviewOrchestrator:
    """Drives a webhook delivery through verification, generation and
    publishing.

    Attributes:
        github_client: GitHub API client (diff retrieval and write-back).
        backend: Text-generation backend.
        authenticator: Verifies deliveries against the registration store.
        event_emitter: Receives stage transitions and outcomes.
        options: Review flow tunables.
        handler: Webhook payload parser.
    """

    def __init__(
        self,
        github_client: GitHubClient,
        backend: GenerationBackend,
        authenticator: WebhookAuthenticator,
        event_emitter: EventEmitter,
        options: Optional[ReviewOptions] = None,
        handler: Optional[WebhookHandler] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.github_client = github_client
        self.backend = backend
        self.authenticator = authenticator
        self.event_emitter = event_emitter
        self.options = options or ReviewOptions()
        self.handler = handler or WebhookHandler()
        self._sleep = sleep

    async def handle_delivery(
        self,
        body: bytes,
        signature: Optional[str],
        event_name: Optional[str] = None,
        delivery_id: Optional[str] = None,
    ) -> ReviewResult:
        """Process one webhook delivery to a terminal stage.

        Args:
            body: Raw request body exactly as received.
            signature: X-Hub-Signature-256 header value.
            event_name: X-GitHub-Event header value.
            delivery_id: X-GitHub-Delivery header value, for correlation.

        Returns:
            The terminal ReviewResult. Never raises for delivery-level
            failures; those are reported through the result.
        """
        started = time.monotonic()
        result = ReviewResult(
            stage=ReviewStage.RECEIVED,
            history=[ReviewStage.RECEIVED],
            delivery_id=delivery_id,
        )
        await self._emit_transition_event(result, None, ReviewStage.RECEIVED)

        logger.info(
            "Webhook delivery received",
            extra={"delivery_id": delivery_id, "event_name": event_name, "body_length": len(body)},
        )

        try:
            payload = json.loads(body)
        except ValueError:
            await self._reject(result, ErrorKind.MALFORMED_PAYLOAD, "Request body is not valid JSON")
            return result

        registration = await self._verify(result, payload, body, signature)
        if result.is_terminal:
            return result

        event = await self._filter(result, payload, event_name)
        if event is None:
            return result

        token = self._credential_for(registration)
        if not token:
            await self._fail(
                result,
                ErrorKind.UNAUTHORIZED,
                "No GitHub credential available for repository",
            )
            return result

        request = await self._fetch_changes(result, event, token)
        if request is None:
            return result

        prompt = await self._build_prompt(result, request)
        if prompt is None:
            return result

        generation = await self._generate(result, prompt)
        if generation is None:
            return result

        await self._transition(result, ReviewStage.POST_PROCESSING)
        review = parse_generated_review(
            generation,
            min_chars=self.options.min_review_chars,
            min_lines=self.options.min_review_lines,
        )
        result.title = review.title
        result.too_short = review.too_short

        if not await self._publish(result, request, review):
            return result

        await self._transition(result, ReviewStage.COMPLETED)
        await self._emit_completion_event(result, time.monotonic() - started)
        logger.info(
            "Review published",
            extra={
                "pr_id": result.pr_id,
                "comment_id": result.comment_id,
                "pr_updated": result.pr_updated,
                "too_short": result.too_short,
            },
        )
        return result

    async def _verify(
        self,
        result: ReviewResult,
        payload: Any,
        body: bytes,
        signature: Optional[str],
    ) -> Optional[WebhookRegistration]:
        """Locate the repository in the payload and authenticate the delivery.

        The payload is only read here to find the repository; nothing in it
        is trusted until the signature over ``body`` checks out.
        """
        coordinates = self.handler.parse_repository(payload)
        if coordinates is None:
            await self._reject(result, ErrorKind.MALFORMED_PAYLOAD, "Payload names no repository")
            return None

        owner, name = coordinates
        result.repository = f"{owner}/{name}"

        try:
            return await self.authenticator.authenticate(owner, name, body, signature)
        except (UnauthorizedError, RegistrationNotFoundError) as exc:
            await self._reject(result, error_kind_for(exc), exc.message)
        except StorageError as exc:
            await self._fail(result, ErrorKind.STORAGE, exc)
        return None

    async def _filter(
        self,
        result: ReviewResult,
        payload: Any,
        event_name: Optional[str],
    ) -> Optional[PullRequestEvent]:
        await self._transition(result, ReviewStage.FILTERING)

        if event_name and event_name != PULL_REQUEST_EVENT:
            await self._ignore(result, f"event type {event_name}")
            return None

        event = self.handler.parse_pull_request_event(payload)
        if event is None:
            await self._ignore(result, "not a pull request payload")
            return None

        result.pr_number = event.pr_number

        if not event.is_reviewable:
            await self._ignore(result, f"action {event.action}")
            return None

        return event

    def _credential_for(self, registration: Optional[WebhookRegistration]) -> str:
        if registration is not None and registration.access_token is not None:
            return registration.access_token.get_secret_value()
        return self.options.fallback_token

    async def _fetch_changes(
        self,
        result: ReviewResult,
        event: PullRequestEvent,
        token: str,
    ) -> Optional[ReviewRequest]:
        await self._transition(result, ReviewStage.FETCHING_DIFF)

        try:
            pull_request = await self.github_client.get_pull_request(
                event.owner, event.repository, event.pr_number, token
            )
            request = ReviewRequest(
                owner=event.owner,
                repository=event.repository,
                pr_number=event.pr_number,
                pr_title=pull_request.title,
                access_token=token,
            )
            if self.options.diff_mode == DiffMode.FILES:
                request.files = await self.github_client.list_pull_request_files(
                    event.owner, event.repository, event.pr_number, token
                )
            else:
                request.diff_text = await self.github_client.get_pull_request_diff(
                    event.owner, event.repository, event.pr_number, token
                )
        except Exception as exc:
            await self._fail(result, error_kind_for(exc), exc)
            return None

        return request

    async def _build_prompt(self, result: ReviewResult, request: ReviewRequest) -> Optional[str]:
        await self._transition(result, ReviewStage.PROMPTING)

        try:
            if self.options.diff_mode == DiffMode.FILES:
                diff_section = format_changed_files(request.files, self.options.max_prompt_chars)
            else:
                diff_section = format_diff_for_prompt(request.diff_text, self.options.max_prompt_chars)

            return build_review_prompt(
                diff_section or EMPTY_DIFF_PLACEHOLDER,
                style=self.backend.prompt_style,
                pr_title=request.pr_title,
            )
        except Exception as exc:
            await self._fail(result, ErrorKind.INTERNAL, exc)
            return None

    async def _generate(self, result: ReviewResult, prompt: str) -> Optional[GenerationResult]:
        await self._transition(result, ReviewStage.GENERATING)

        try:
            return await retry_on_unavailable(
                lambda: self.backend.generate(prompt),
                max_retries=self.options.max_retries,
                initial_delay=self.options.initial_delay,
                sleep=self._sleep,
            )
        except Exception as exc:
            await self._fail(result, error_kind_for(exc), exc)
            return None

    async def _publish(
        self,
        result: ReviewResult,
        request: ReviewRequest,
        review: GeneratedReview,
    ) -> bool:
        """Post the comment, then patch the pull request.

        Returns:
            True when every requested write succeeded.
        """
        await self._transition(result, ReviewStage.PUBLISHING)
        first_error: Optional[Exception] = None

        try:
            comment = await self.github_client.create_comment(
                request.owner,
                request.repository,
                request.pr_number,
                format_comment(review),
                request.access_token,
            )
            result.comment_id = comment.get("id")
        except Exception as exc:
            logger.exception(
                "Failed to post review comment",
                extra={"pr_id": request.pr_id},
            )
            first_error = exc

        if self.options.update_pull_request:
            try:
                await self.github_client.update_pull_request(
                    request.owner,
                    request.repository,
                    request.pr_number,
                    request.access_token,
                    title=review.title,
                    body=review.body,
                )
                result.pr_updated = True
            except Exception as exc:
                logger.exception(
                    "Failed to update pull request",
                    extra={"pr_id": request.pr_id, "comment_id": result.comment_id},
                )
                first_error = first_error or exc

        if first_error is not None:
            await self._fail(result, error_kind_for(first_error), first_error)
            return False
        return True

    # ------------------------------------------------------------------
    # Stage bookkeeping
    # ------------------------------------------------------------------

    async def _transition(self, result: ReviewResult, to_stage: ReviewStage) -> None:
        """Move the delivery to ``to_stage`` and emit a transition event."""
        from_stage = result.stage
        if not is_valid_transition(from_stage, to_stage):
            raise ValueError(
                f"Invalid stage transition: {from_stage.value} -> {to_stage.value}"
            )
        result.stage = to_stage
        result.history.append(to_stage)
        await self._emit_transition_event(result, from_stage, to_stage)

    async def _ignore(self, result: ReviewResult, reason: str) -> None:
        logger.info(
            "Delivery ignored: %s",
            reason,
            extra={"delivery_id": result.delivery_id, "repository": result.repository},
        )
        result.error = reason
        await self._transition(result, ReviewStage.IGNORED)

    async def _reject(self, result: ReviewResult, kind: ErrorKind, message: str) -> None:
        logger.warning(
            "Delivery rejected: %s",
            message,
            extra={
                "delivery_id": result.delivery_id,
                "repository": result.repository,
                "error_kind": kind.value,
            },
        )
        failed_stage = result.stage
        result.error_kind = kind
        result.error = message
        await self._transition(result, ReviewStage.REJECTED)
        await self._emit_outcome_event(EventType.REJECTION, result, failed_stage)

    async def _fail(
        self,
        result: ReviewResult,
        kind: ErrorKind,
        error: Union[Exception, str],
    ) -> None:
        """Transition to FAILED and emit an error event."""
        failed_stage = result.stage
        extra = {
            "delivery_id": result.delivery_id,
            "pr_id": result.pr_id,
            "stage": failed_stage.value,
            "error_kind": kind.value,
        }
        response_body = getattr(error, "response_body", None)
        if response_body:
            extra["response_body"] = str(response_body)[:500]
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            extra["retry_after"] = retry_after

        logger.error(
            "Review failed at stage %s: %s",
            failed_stage.value,
            error,
            exc_info=error if isinstance(error, Exception) else None,
            extra=extra,
        )

        result.error_kind = kind
        result.error = f"{failed_stage.value}: {error}"
        if retry_after is not None:
            result.error += f" (retry after {retry_after}s)"
        await self._transition(result, ReviewStage.FAILED)
        await self._emit_outcome_event(EventType.ERROR, result, failed_stage)

    def _subject(self, result: ReviewResult) -> str:
        return result.pr_id or result.repository or result.delivery_id or "unknown"

    async def _emit_transition_event(
        self,
        result: ReviewResult,
        from_stage: Optional[ReviewStage],
        to_stage: ReviewStage,
    ) -> None:
        await self._safe_emit(
            ReviewEvent(
                event_type=EventType.STATE_TRANSITION,
                subject=self._subject(result),
                repository=result.repository or "unknown",
                details={
                    "from_stage": from_stage.value if from_stage else None,
                    "to_stage": to_stage.value,
                },
            )
        )

    async def _emit_outcome_event(
        self,
        event_type: EventType,
        result: ReviewResult,
        stage: ReviewStage,
    ) -> None:
        await self._safe_emit(
            ReviewEvent(
                event_type=event_type,
                subject=self._subject(result),
                repository=result.repository or "unknown",
                details={
                    "stage": stage.value,
                    "error_kind": result.error_kind.value if result.error_kind else None,
                    "error_message": result.error,
                    "comment_id": result.comment_id,
                    "pr_updated": result.pr_updated,
                },
            )
        )

    async def _emit_completion_event(self, result: ReviewResult, duration: float) -> None:
        await self._safe_emit(
            ReviewEvent(
                event_type=EventType.COMPLETION,
                subject=self._subject(result),
                repository=result.repository or "unknown",
                details={
                    "comment_id": result.comment_id,
                    "pr_updated": result.pr_updated,
                    "too_short": result.too_short,
                    "duration_seconds": round(duration, 3),
                },
            )
        )

    async def _safe_emit(self, event: ReviewEvent) -> None:
        """Emit an event, swallowing exceptions so observability never breaks a review."""
        try:
            await self.event_emitter.emit(event)
        except Exception:
            logger.exception(
                "Failed to emit relay event",
                extra={
                    "event_type": event.event_type.value,
                    "subject": event.subject,
                },
            )
