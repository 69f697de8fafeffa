"""Top-level application controller for the video mirror."""

from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from types import FrameType
from typing import Any, Final, Optional, Sequence

import httpx
import uvicorn
from apscheduler.schedulers import SchedulerNotRunningError

from .api import create_app
from .config import AppConfig, load_config
from .credentials import CredentialManager
from .db import DatabaseManager
from .logging_utils import configure_logging, log_event
from .remote import AnalyticsClient, CatalogClient, TokenClient, build_http_client
from .scheduler import SchedulerManager
from .sync.catalog import CatalogSyncEngine
from .sync.views import ViewReconciliationEngine
from .tasks import CatalogSyncTask, CredentialRefreshTask, Task, ViewReconcileTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class JobSpec:
    """Describes a single scheduled job and its config-driven cadence."""

    job_id: str
    interval_field: str
    run_immediately: bool

    def interval_seconds(self, config: AppConfig) -> int:
        return int(getattr(config, self.interval_field))


# The token job waits one interval: bootstrap has just refreshed the credential.
JOB_SPECS: Final[tuple[JobSpec, ...]] = (
    JobSpec("get_access_token", "token_interval_seconds", run_immediately=False),
    JobSpec("sync_videos", "catalog_interval_seconds", run_immediately=True),
    JobSpec("sync_views", "views_interval_seconds", run_immediately=True),
)


class VideoMirror:
    """Coordinates credential bootstrap, scheduling, the read API, and shutdown."""

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        transport: httpx.BaseTransport | None = None,
        setup_logging: bool = True,
    ) -> None:
        self.config = config or load_config()
        if setup_logging:
            configure_logging(self.config)
        self.db = DatabaseManager(self.config.database_path)
        self.http = build_http_client(self.config, transport=transport)

        self.credentials = CredentialManager(TokenClient(self.config, self.http))
        self.catalog_engine = CatalogSyncEngine(CatalogClient(self.config, self.http), self.credentials)
        self.views_engine = ViewReconciliationEngine(AnalyticsClient(self.config, self.http))
        self.tasks: dict[str, Task] = {
            "get_access_token": CredentialRefreshTask(self.credentials),
            "sync_videos": CatalogSyncTask(self.catalog_engine, self.db),
            "sync_views": ViewReconcileTask(self.views_engine, self.db, self.credentials),
        }

        self.scheduler = SchedulerManager(self.db)
        self.api = create_app(self.db)
        self._server: uvicorn.Server | None = None
        self._stop_event = threading.Event()
        self._lifecycle_lock = threading.Lock()
        self._is_running = False
        self._jobs_configured = False
        self._signals_installed = False
        log_event(logger, logging.INFO, "mirror.initialized", environment=self.config.environment)

    # ------------------------------------------------------------------ #
    # Bootstrap
    # ------------------------------------------------------------------ #

    def bootstrap(self) -> None:
        """Obtain the first credential (fatal on failure) and register jobs."""
        if not self.credentials.has_credential:
            self.credentials.bootstrap()
            log_event(logger, logging.INFO, "mirror.credential_ready")
        self._configure_jobs()

    def _configure_jobs(self) -> None:
        if self._jobs_configured:
            return
        for spec in JOB_SPECS:
            seconds = spec.interval_seconds(self.config)
            self.scheduler.add_recurring_job(
                self.tasks[spec.job_id],
                id=spec.job_id,
                seconds=seconds,
                run_immediately=spec.run_immediately,
            )
            log_event(logger, logging.DEBUG, "mirror.job_registered", job_id=spec.job_id, seconds=seconds)
        self._jobs_configured = True

    # ------------------------------------------------------------------ #
    # One-shot passes (CLI)
    # ------------------------------------------------------------------ #

    def sync_catalog_once(self) -> int:
        if not self.credentials.has_credential:
            self.credentials.bootstrap()
        return self.catalog_engine.sync_once(self.db)

    def sync_views_once(self, video_ids: Sequence[str] | None = None) -> int:
        if not self.credentials.has_credential:
            self.credentials.bootstrap()
        return self.views_engine.reconcile_once(self.db, self.credentials.current(), video_ids)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def _install_signal_handlers(self) -> None:
        """Attach SIGTERM/SIGINT handlers when running on the main thread."""
        if self._signals_installed:
            return
        if threading.current_thread() is not threading.main_thread():
            log_event(logger, logging.WARNING, "mirror.signal_handlers_skipped", reason="not_main_thread")
            return
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)
        self._signals_installed = True

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        log_event(logger, logging.WARNING, "mirror.signal_received", signal=signum)
        self.stop()

    def start(self, *, serve_api: bool = True) -> None:
        """Bootstrap, start the scheduler, and block until termination."""
        with self._lifecycle_lock:
            if self._is_running:
                log_event(logger, logging.INFO, "mirror.start_ignored", reason="already_running")
                return
            self._is_running = True
            self._stop_event.clear()

        try:
            self.bootstrap()
            self._install_signal_handlers()
            self.scheduler.start()
            self.db.record_health(component="mirror", status="pass", detail="scheduler_started")
            log_event(logger, logging.INFO, "mirror.started", jobs=len(JOB_SPECS), serve_api=serve_api)
            if serve_api:
                self._serve_api()
            else:
                self._stop_event.wait()
        except Exception as exc:
            log_event(logger, logging.CRITICAL, "mirror.start_failed", error=str(exc))
            raise
        finally:
            self._shutdown_resources()

    def _serve_api(self) -> None:
        server_config = uvicorn.Config(
            self.api,
            host=self.config.api_host,
            port=self.config.api_port,
            log_config=None,
        )
        self._server = uvicorn.Server(server_config)
        log_event(logger, logging.INFO, "mirror.api_listening", host=self.config.api_host, port=self.config.api_port)
        self._server.run()

    def _shutdown_resources(self) -> None:
        try:
            self.scheduler.shutdown()
        except SchedulerNotRunningError:
            pass
        except Exception as exc:
            log_event(logger, logging.ERROR, "mirror.scheduler_shutdown_failed", error=str(exc))
        finally:
            with self._lifecycle_lock:
                self._is_running = False

        self.http.close()
        try:
            self.db.close()
            log_event(logger, logging.INFO, "mirror.database_closed")
        except Exception as exc:
            log_event(logger, logging.ERROR, "mirror.database_close_failed", error=str(exc))
        self._server = None
        self._stop_event.clear()

    def stop(self) -> None:
        """Signal the application to stop."""
        with self._lifecycle_lock:
            if not self._is_running:
                log_event(logger, logging.INFO, "mirror.stop_ignored", reason="not_running")
                return
            self._stop_event.set()
            if self._server is not None:
                self._server.should_exit = True
            log_event(logger, logging.WARNING, "mirror.stop_requested")

    def close(self) -> None:
        """Release resources when the application was never started."""
        self.http.close()
        self.db.close()

    def health_snapshot(self) -> dict[str, Any]:
        snapshot = self.scheduler.snapshot()
        return {
            "environment": self.config.environment,
            "credential": {"present": self.credentials.has_credential},
            "scheduler": {
                "total_jobs": snapshot.total_jobs,
                "running": snapshot.running,
                "next_runs": snapshot.next_runs,
            },
        }
