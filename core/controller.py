"""
Workflow orchestration for one LinkedIn connection run.

AutomationController sequences login, navigation and connection processing,
owns the observable RunStatus, and guarantees that the browser session is
closed once per run through its ResourceScope.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from actions.connections import ConnectionProcessor, ProcessingResult
from actions.login import SessionHandler
from actions.navigation import NavigationHandler
from config import validate_app_config
from core.browser import BrowserSession
from core.errors import (
    ConfigurationError,
    ConnectionActionError,
    LoginError,
    NavigationError,
    error_message,
)
from core.logger import bind_context, get_structured_logger
from core.metrics import MetricsCollector
from core.resilience import CircuitBreaker, CircuitBreakerListener, ResourceScope
from core.run_context import RunContext
from core.status import ProgressInfo, RunLog, RunStatus, WorkflowStep, build_progress, build_summary
from diagnostics import DiagnosticContext, DiagnosticOptions, capture_on_failure

StatusObserver = Callable[[RunStatus], None]


@dataclass
class StartResult:
    success: bool
    status: RunStatus
    error: Optional[str] = None


class AutomationController:
    """
    Runs authenticate → navigate → process against a single browser session.

    Collaborators are built from ``app_config`` unless injected. Only one run
    may be active at a time; ``start()`` rejects a second caller instead of
    sharing the session.
    """

    def __init__(
        self,
        app_config,
        session=None,
        session_handler=None,
        navigation_handler=None,
        connection_processor=None,
        sink: Optional[RunLog] = None,
        metrics: Optional[MetricsCollector] = None,
        run_context: Optional[RunContext] = None,
    ):
        """
        Initialize the controller.

        Args:
            app_config: Application configuration (see ``config.AppConfig``)
            session: Browser session; defaults to a new BrowserSession
            session_handler: Login handler; defaults to a SessionHandler on ``session``
            navigation_handler: Navigation handler; defaults to a NavigationHandler on ``session``
            connection_processor: Processing engine; defaults to a ConnectionProcessor on ``session``
            sink: Status/log sink shared with the handlers
            metrics: Metrics collector for this controller
            run_context: Diagnostic context bag shared with the handlers
        """
        self.config = app_config
        self.logger = get_structured_logger(__name__)
        self.run_context = run_context or RunContext()
        self.sink = sink or RunLog(max_entries=app_config.logging.max_log_entries)
        self.metrics = metrics or MetricsCollector()
        self.session = session or BrowserSession(app_config.browser)

        self.session_handler = session_handler or SessionHandler(self.session, app_config.login, self.run_context)

        if navigation_handler is None:
            breaker = CircuitBreaker(
                failure_threshold=app_config.circuit_breaker.failure_threshold,
                recovery_timeout=app_config.circuit_breaker.recovery_timeout,
                name="navigation",
                listeners=[CircuitBreakerListener(bind_context(self.logger, breaker="navigation"), self.metrics)],
            )
            navigation_handler = NavigationHandler(self.session, app_config.navigation, breaker, self.run_context)
        self.navigation_handler = navigation_handler

        self.connection_processor = connection_processor or ConnectionProcessor(
            self.session,
            app_config.connections,
            run_context=self.run_context,
            sink=self.sink,
            metrics=self.metrics,
            progress_callback=self._on_progress,
        )

        self.diagnostics = DiagnosticOptions.from_config(app_config.diagnostics)
        self._scope = ResourceScope(name="automation")
        self._status = RunStatus(item_limit=app_config.connections.max_connections)
        self._observers: List[StatusObserver] = []
        self._run_active = False
        self._stop_event: Optional[asyncio.Event] = None
        self._is_stopping = False
        self.last_result: Optional[ProcessingResult] = None

    # Status

    def get_status(self) -> RunStatus:
        return self._status

    def is_running(self) -> bool:
        return self._status.is_running

    def on_status_change(self, observer: StatusObserver) -> Callable[[], None]:
        """Register an observer called with a snapshot after every status change; returns an unsubscribe function."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _update_status(self, **changes) -> None:
        self._status = self._status.updated(**changes)
        snapshot = self._status
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as e:
                self.logger.warning("status_observer_failed", error=error_message(e))

    def get_progress(self) -> ProgressInfo:
        status = self._status
        return build_progress(status.items_processed, status.items_succeeded, status.item_limit)

    def get_duration(self) -> Optional[float]:
        """Milliseconds since the run started, up to its end if it has ended."""
        if self._status.start_time is None:
            return None
        end = self._status.end_time or datetime.now()
        return (end - self._status.start_time).total_seconds() * 1000

    def reset(self) -> bool:
        if self._run_active or self._status.is_running:
            self.sink.warning("Cannot reset while automation is running")
            return False
        self._status = RunStatus(item_limit=self.config.connections.max_connections)
        self._update_status()
        self.run_context.clear()
        self.last_result = None
        return True

    def _on_progress(self, processed: int, succeeded: int) -> None:
        self._update_status(items_processed=processed, items_succeeded=succeeded)
        self.sink.progress(build_progress(processed, succeeded, self._status.item_limit))

    # Run lifecycle

    async def start(self) -> StartResult:
        """
        Run the whole workflow once.

        Returns:
            StartResult with the final status snapshot. A failed stage leaves the
            status in ``error`` with ``last_error`` set; the caller is still
            expected to call ``stop()`` (or use ``run()``) to release the browser.
        """
        if self._run_active:
            self.sink.warning("Automation is already running")
            return StartResult(success=False, status=self._status, error="Automation is already running")

        self._run_active = True
        stop_event = asyncio.Event()
        self._stop_event = stop_event
        try:
            return await self._run_stages(stop_event)
        finally:
            self._run_active = False

    async def _run_stages(self, stop_event: asyncio.Event) -> StartResult:
        self.run_context.clear()
        self.last_result = None
        self._update_status(
            is_running=True,
            current_step=WorkflowStep.IDLE,
            items_processed=0,
            items_succeeded=0,
            item_limit=self.config.connections.max_connections,
            last_error=None,
            start_time=datetime.now(),
            end_time=None,
        )
        if "browser_session" not in self._scope:
            self._scope.register(self.session.close, name="browser_session")

        stage = "configuration"
        try:
            self._validate_configuration()
            self.sink.action(
                "Starting LinkedIn automation",
                min_mutual_connections=self.config.connections.min_mutual_connections,
                max_connections=self.config.connections.max_connections,
            )

            stage = "browser"
            if not self.session.is_initialized:
                await self.session.initialize()

            stage = "login"
            self._update_status(current_step=WorkflowStep.AUTHENTICATING)
            await self._perform_login()
            if stop_event.is_set():
                return self._stopped_result()

            stage = "navigation"
            self._update_status(current_step=WorkflowStep.NAVIGATING)
            await self._perform_navigation()
            if stop_event.is_set():
                return self._stopped_result()

            stage = "processing"
            self._update_status(current_step=WorkflowStep.PROCESSING)
            await self._perform_processing(stop_event)
            if stop_event.is_set():
                return self._stopped_result()
        except Exception as e:
            message = error_message(e)
            if stop_event.is_set():
                self.logger.info("run_ended_after_stop", stage=stage, error=message)
                return self._stopped_result(message)

            self._update_status(
                is_running=False,
                current_step=WorkflowStep.ERROR,
                last_error=message,
                end_time=datetime.now(),
            )
            self.sink.error(
                f"Automation failed during {stage}: {message}",
                stage=stage,
                recoverable=getattr(e, "recoverable", None),
            )
            await self._capture_diagnostics(stage, e)
            return StartResult(success=False, status=self._status, error=message)

        self._update_status(is_running=False, current_step=WorkflowStep.COMPLETED, end_time=datetime.now())
        self._emit_summary()
        return StartResult(success=True, status=self._status)

    async def stop(self) -> None:
        """
        Stop the run and release the browser session.

        Safe to call at any time and more than once. An in-flight run is marked
        ``idle``; a finished run keeps its terminal step for inspection. The
        current card finishes before processing notices the stop.
        """
        if self._is_stopping:
            return
        self._is_stopping = True
        try:
            if self._stop_event is not None:
                self._stop_event.set()
            if self._status.is_running:
                self.sink.info("Stopping automation")
                self._update_status(is_running=False, current_step=WorkflowStep.IDLE, end_time=datetime.now())
            elif self._status.start_time is not None and self._status.end_time is None:
                self._update_status(end_time=datetime.now())

            for error in await self._scope.cleanup():
                self.sink.warning(f"Cleanup step failed: {error_message(error)}")

            self._export_metrics()
        finally:
            self._is_stopping = False

    async def run(self) -> StartResult:
        """``start()`` followed by ``stop()``, even when start fails or is cancelled."""
        try:
            return await self.start()
        finally:
            await self.stop()

    def _stopped_result(self, error: Optional[str] = None) -> StartResult:
        return StartResult(success=False, status=self._status, error=error or "Automation stopped")

    # Stages

    def _validate_configuration(self) -> None:
        problems = validate_app_config(self.config)
        if problems:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(problems)}",
                context={"problems": problems},
            )

    async def _perform_login(self) -> None:
        self.sink.action("Logging in to LinkedIn")
        started = time.monotonic()
        result = await self.session_handler.authenticate()
        self._record_stage("login", result.success, started, result.error)
        if not result.success:
            raise LoginError(f"Login failed: {result.error}", recoverable=result.recoverable)
        self.sink.info("Login successful")

    async def _perform_navigation(self) -> None:
        self.sink.action("Opening network growth suggestions")
        started = time.monotonic()
        result = await self.navigation_handler.navigate_to_network_growth()
        self._record_stage("navigation", result.success, started, result.error)
        if not result.success:
            raise NavigationError(f"Navigation failed: {result.error}", recoverable=result.recoverable)
        self.sink.info("Suggestions list opened")

    async def _perform_processing(self, stop_event: asyncio.Event) -> None:
        min_mutual = self.config.connections.min_mutual_connections
        max_connections = self.config.connections.max_connections
        self.sink.action(
            f"Processing connections (minimum {min_mutual} mutual, maximum {max_connections})"
        )

        started = time.monotonic()
        result = await self.connection_processor.process_connections(
            min_mutual,
            max_connections,
            should_continue=lambda: not stop_event.is_set(),
        )
        self.last_result = result
        self._update_status(items_processed=result.items_processed, items_succeeded=result.items_succeeded)
        self._record_stage("processing", result.success, started, result.error)

        if not result.success:
            raise ConnectionActionError(f"Connection processing failed: {result.error}", recoverable=False)
        if result.partial_failures:
            self.sink.warning(
                f"{len(result.partial_failures)} connection(s) failed and were skipped",
                failures=result.partial_failures,
            )

    def _record_stage(self, name: str, succeeded: bool, started: float, error: Optional[str]) -> None:
        self.metrics.record_operation(
            name,
            "success" if succeeded else "failure",
            (time.monotonic() - started) * 1000,
            error=error,
            context={"run_id": self.run_context.run_id},
        )

    def _emit_summary(self) -> None:
        status = self._status
        errors = self.last_result.partial_failures if self.last_result else []
        self.sink.summary(
            build_summary(status.start_time, status.end_time, status.items_processed, status.items_succeeded, errors)
        )

    async def _capture_diagnostics(self, stage: str, error: BaseException) -> None:
        try:
            await capture_on_failure(
                self.session,
                self.diagnostics,
                DiagnosticContext(
                    phase=stage,
                    item_id=self.run_context.run_id,
                    url=self.session.url if self.session.is_initialized else None,
                    error=error,
                    run_state=self._status.to_dict(),
                    extra=self.run_context.get_all(),
                ),
                secrets=[self.config.login.password],
            )
        except Exception as e:
            self.logger.warning("diagnostics_capture_failed", stage=stage, error=error_message(e))

    def _export_metrics(self) -> None:
        path = self.config.logging.metrics_file_path
        if not path:
            return
        try:
            self.metrics.export_metrics_to_json(path)
        except OSError as e:
            self.logger.warning("metrics_export_failed", file_path=str(path), error=error_message(e))
