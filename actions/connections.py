"""
Connection processing for the "People you may know" list.

The engine walks the person cards rendered in the suggestions dialog, sends a
connection request to every card that meets the mutual connection threshold,
and scrolls the dialog for more cards until the target is reached, the list
stops growing, or the scroll budget is spent.

Element handles are never kept across a scroll: the dialog, the cards and the
scrollable region are looked up again on every pass because LinkedIn re-renders
the list while it loads.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from playwright.async_api import Error as PlaywrightError, TimeoutError as PlaywrightTimeoutError

from core.errors import ConnectionActionError, error_message, is_critical_error
from core.parser import (
    contains_mutual_connection_info,
    extract_connection_name,
    make_card_id,
    parse_mutual_connection_count,
)
from core.resilience import RetryPolicy, with_fallback, with_retry
from core.run_context import RunContext
from core.selectors import selectors
from core.status import RunLog

logger = logging.getLogger(__name__)

INTERACTION_ERROR_PATTERNS = ("timeout", "click", "element", "detached")


@dataclass
class CandidateItem:
    id: str
    display_name: str
    eligibility_metric: int
    handle: Any


@dataclass
class CardOutcome:
    status: str  # success, skipped, failure
    reason: Optional[str] = None
    candidate: Optional[CandidateItem] = None


@dataclass
class ProcessingResult:
    success: bool
    items_processed: int = 0
    items_succeeded: int = 0
    items_skipped: int = 0
    partial_failures: List[str] = field(default_factory=list)
    error: Optional[str] = None


def is_interaction_error(error: BaseException) -> bool:
    """Only clicks, timeouts and stale elements are worth a second try on the same card."""
    if is_critical_error(error):
        return False
    if isinstance(error, PlaywrightTimeoutError):
        return True
    if isinstance(error, ConnectionActionError):
        return error.recoverable
    text = str(error).lower()
    return any(pattern in text for pattern in INTERACTION_ERROR_PATTERNS)


class ConnectionProcessor:
    """Sends connection requests to eligible people in the open suggestions list."""

    def __init__(
        self,
        session,
        connection_config,
        run_context: Optional[RunContext] = None,
        sink: Optional[RunLog] = None,
        metrics=None,
        progress_callback: Optional[Callable[[int, int], None]] = None,
    ):
        self.session = session
        self.config = connection_config
        self.run_context = run_context or RunContext()
        self.sink = sink or RunLog()
        self.metrics = metrics
        self.progress_callback = progress_callback
        self.card_policy = RetryPolicy(
            max_attempts=connection_config.max_card_attempts,
            base_delay=connection_config.card_retry_delay,
            max_delay=connection_config.card_retry_delay * 4,
            retry_predicate=is_interaction_error,
            name="process_card",
        )

    async def process_connections(
        self,
        min_mutual_connections: int,
        max_connections: int,
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> ProcessingResult:
        """Connect with up to ``max_connections`` people sharing enough mutual connections.

        Args:
            min_mutual_connections: Lowest acceptable mutual connection count
            max_connections: Number of successful requests to stop at
            should_continue: Polled between cards; returning False stops the run early

        Returns:
            ProcessingResult. Per-card failures are listed in ``partial_failures``
            and leave ``success`` True; a failure to read or scroll the list, or a
            critical card failure, sets ``success`` False with ``error``.
        """
        result = ProcessingResult(success=True)
        processed_ids: Set[str] = set()
        scroll_attempts = 0

        logger.info(
            f"Processing up to {max_connections} connections with at least "
            f"{min_mutual_connections} mutual connections"
        )
        self.run_context.set("processing_target", max_connections)

        try:
            while result.items_succeeded < max_connections and scroll_attempts < self.config.max_scroll_attempts:
                if self._stop_requested(should_continue):
                    break

                container = await self._resolve_list_container()
                if container is None:
                    logger.warning("Suggestions list dialog is not open; stopping.")
                    break

                cards = await self._discover_cards(container)
                logger.info(f"Discovered {len(cards)} cards, {len(processed_ids)} processed so far")

                for card in cards:
                    if result.items_succeeded >= max_connections or self._stop_requested(should_continue):
                        break

                    card_id = await self._derive_card_id(card)
                    if card_id is None or card_id in processed_ids:
                        continue
                    processed_ids.add(card_id)
                    result.items_processed += 1

                    outcome = await self._process_card(card, card_id, min_mutual_connections)
                    self._record_outcome(result, card_id, outcome)

                if result.items_succeeded >= max_connections or self._stop_requested(should_continue):
                    break

                scroll_attempts += 1
                logger.debug(f"Loading more suggestions (scroll {scroll_attempts}/{self.config.max_scroll_attempts})")
                if not await self._grow_list():
                    logger.info("No more suggestions loaded; the list is exhausted.")
                    break
        except Exception as e:
            result.success = False
            result.error = error_message(e)
            logger.error(f"Connection processing aborted: {result.error}")

        self.run_context.set("processing_scroll_attempts", scroll_attempts)
        logger.info(
            f"Connection processing finished: {result.items_succeeded} sent, {result.items_skipped} skipped, "
            f"{len(result.partial_failures)} failed out of {result.items_processed} evaluated"
        )
        return result

    @staticmethod
    def _stop_requested(should_continue: Optional[Callable[[], bool]]) -> bool:
        if should_continue is not None and not should_continue():
            logger.info("Stop requested; no further cards will be processed.")
            return True
        return False

    def _record_outcome(self, result: ProcessingResult, card_id: str, outcome: CardOutcome) -> None:
        if outcome.status == "success":
            result.items_succeeded += 1
        elif outcome.status == "skipped":
            result.items_skipped += 1
            logger.debug(f"Skipped {card_id}: {outcome.reason}")
        else:
            result.partial_failures.append(f"{card_id}: {outcome.reason}")
            self.sink.warning(f"Failed to connect: {outcome.reason}", card_id=card_id)

        if self.progress_callback is not None:
            self.progress_callback(result.items_processed, result.items_succeeded)

    async def _process_card(self, card, card_id: str, min_mutual_connections: int) -> CardOutcome:
        """Check and connect one card; retried on interaction errors, skipped on anything else non-critical."""
        started = time.monotonic()
        last_error: Dict[str, BaseException] = {}

        async def primary() -> CardOutcome:
            outcome = await with_retry(
                lambda: self._evaluate_and_connect(card, card_id, min_mutual_connections),
                self.card_policy,
            )
            if outcome.succeeded:
                return outcome.value
            last_error["error"] = outcome.error
            raise outcome.error

        async def skip() -> CardOutcome:
            return CardOutcome("failure", reason=error_message(last_error.get("error")))

        try:
            outcome = await with_fallback(
                primary,
                skip,
                should_fallback=lambda e: not is_critical_error(e),
                name="process_card",
            )
        finally:
            duration_ms = (time.monotonic() - started) * 1000

        if self.metrics is not None:
            candidate = outcome.candidate
            self.metrics.record_connection(
                card_id,
                outcome.status,
                duration_ms,
                {
                    "name": candidate.display_name if candidate else None,
                    "mutual_connections": candidate.eligibility_metric if candidate else None,
                    "reason": outcome.reason,
                },
            )
        return outcome

    async def _evaluate_and_connect(self, card, card_id: str, min_mutual_connections: int) -> CardOutcome:
        candidate, reason = await self._check_eligibility(card, card_id, min_mutual_connections)
        if candidate is None:
            return CardOutcome("skipped", reason=reason)

        await self._send_connection_request(candidate)
        return CardOutcome("success", candidate=candidate)

    async def _check_eligibility(
        self, card, card_id: str, min_mutual_connections: int
    ) -> Tuple[Optional[CandidateItem], Optional[str]]:
        card_text = await self.session.text_content(card) or ""
        name = extract_connection_name(card_text) or card_id

        mutual_text = await self._extract_mutual_text(card, card_text)
        mutual_count = parse_mutual_connection_count(mutual_text)
        if mutual_count < min_mutual_connections:
            return None, f"{name} has {mutual_count} mutual connections (minimum {min_mutual_connections})"

        button = await self._find_connect_button(card)
        if button is None:
            return None, f"{name} has no available Connect button"

        return CandidateItem(id=card_id, display_name=name, eligibility_metric=mutual_count, handle=card), None

    async def _extract_mutual_text(self, card, card_text: str) -> Optional[str]:
        for selector in selectors["mutual_connection_text"]:
            for element in await self.session.locate_all(selector, root=card):
                text = await self.session.text_content(element)
                if contains_mutual_connection_info(text):
                    return text.strip()

        for line in card_text.splitlines():
            if contains_mutual_connection_info(line):
                return line.strip()
        return None

    async def _find_connect_button(self, card):
        await self.session.scroll_into_view(card)
        for selector in selectors["connect_buttons"]:
            button = await self.session.locate(selector, root=card)
            if button is None:
                continue
            if await self.session.is_visible(button) and await self.session.is_enabled(button):
                return button
        return None

    async def _send_connection_request(self, candidate: CandidateItem) -> None:
        # Looked up again right before the click; the handle from the eligibility check may be stale.
        button = await self._find_connect_button(candidate.handle)
        if button is None:
            raise ConnectionActionError(
                f"Could not find or click Connect button for {candidate.display_name}",
                context={"card_id": candidate.id},
            )

        await self.session.click(button)
        await self.session.pause(self.config.action_settle_ms)
        confirmed = await self._confirm_invitation()

        self.sink.action(
            f"Connected with {candidate.display_name} ({candidate.eligibility_metric} mutual connections)",
            card_id=candidate.id,
            confirmed=confirmed,
        )
        # Rate limit between requests.
        await self.session.pause(self.config.connection_delay_ms)

    async def _confirm_invitation(self) -> bool:
        """Click "Send" when LinkedIn asks whether to add a note; no dialog is fine."""
        await self.session.pause(self.config.confirmation_wait_ms)
        for selector in selectors["send_invitation_buttons"]:
            button = await self.session.locate(selector)
            if button is None:
                continue
            if await self.session.is_visible(button) and await self.session.is_enabled(button):
                logger.debug(f"Confirming invitation with: {selector}")
                await self.session.click(button)
                await self.session.pause(self.config.action_settle_ms)
                return True
        return False

    async def _resolve_list_container(self):
        for selector in selectors["list_dialogs"]:
            container = await self.session.locate(selector)
            if container is not None:
                return container
        return None

    async def _discover_cards(self, container) -> list:
        return await self.session.locate_all(selectors["person_card"], root=container)

    async def _derive_card_id(self, card) -> Optional[str]:
        """Stable id for a card, or None when it cannot be read on this pass."""
        try:
            name = extract_connection_name(await self.session.text_content(card))
            position = await self.session.content_position(card)
        except PlaywrightError as e:
            logger.debug(f"Could not read card id, leaving the card for the next pass: {e}")
            return None
        return make_card_id(name, position)

    async def _grow_list(self) -> bool:
        """Scroll the list by one screen; True only when more cards are rendered afterwards."""
        container = await self._resolve_list_container()
        if container is None:
            return False

        cards_before = await self._discover_cards(container)
        anchor = cards_before[-1] if cards_before else container
        scroller = await self.session.scrollable_ancestor(anchor)
        if scroller is None:
            logger.info("No scrollable region found around the suggestions list.")
            return False

        moved = await self.session.scroll_by_viewport(scroller)
        if moved <= 0:
            logger.debug("Suggestions list is already scrolled to the bottom.")
            return False

        await self.session.pause(self.config.scroll_settle_ms)

        container = await self._resolve_list_container()
        cards_after = await self._discover_cards(container) if container is not None else []
        logger.debug(f"Scrolled {moved}px: {len(cards_before)} -> {len(cards_after)} cards")
        return len(cards_after) > len(cards_before)
