"""
Ingestion engine for modindex.

This module contains the crawl cycle that drives the write path (source
adapter, normalizer, package index) and the scheduler that repeats it on a
fixed interval.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List, Optional

from modindex.core.exceptions import (
    CancelledError, ConfigurationError, DiscoveryError, EmptyVersionSetError
)
from modindex.core.interfaces import CycleReport, EcosystemReport, IndexerConfig, RepositoryDescriptor
from modindex.core.normalizer import DEFAULT_TAG_REPLACEMENTS, Normalizer
from modindex.core.store import PackageIndex
from modindex.fetcher.base import HttpClient, SourceAdapter
from modindex.fetcher.factory import AdapterRegistry, adapter_registry


logger = logging.getLogger(__name__)

PUBLISHED = "published"
WITHHELD = "withheld"


class IngestionEngine:
    """
    Runs crawl cycles over the configured ecosystems.

    Within an ecosystem, packages are fetched, normalized and upserted in a
    thread pool. A failure is isolated to its package: it is logged, counted
    and never cancels sibling work.
    """

    def __init__(
        self,
        config: IndexerConfig,
        index: PackageIndex,
        registry: Optional[AdapterRegistry] = None,
        normalizer: Optional[Normalizer] = None,
        http: Optional[HttpClient] = None,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Initialize the ingestion engine.

        Args:
            config: Indexer configuration.
            index: Index that receives normalized records.
            registry: Adapter registry. Defaults to the module-level registry.
            normalizer: Normalizer. If None, one is built from ``config``.
            http: HTTP client shared by all adapters.
            cancel_event: Event that requests cooperative shutdown.
            clock: Time source for cycle reports.
        """
        self.config = config
        self.index = index
        self.registry = registry or adapter_registry
        self.normalizer = normalizer or Normalizer(
            tag_replacements=config.tag_replacements or DEFAULT_TAG_REPLACEMENTS,
            source_precedence=config.source_precedence,
        )
        self.http = http or HttpClient(config.fetcher_config())
        self.cancel_event = cancel_event or threading.Event()
        self.clock = clock

    def get_ecosystems(self) -> List[str]:
        """Configured ecosystems, or every registered one if none are configured."""
        return list(self.config.ecosystems) or self.registry.get_available_adapters()

    def run_cycle(self, ecosystems: Optional[List[str]] = None) -> CycleReport:
        """
        Run one crawl pass over each ecosystem.

        Args:
            ecosystems: Ecosystems to crawl. Defaults to the configured ones.

        Returns:
            CycleReport with per-ecosystem counts.

        Raises:
            ConfigurationError: If an ecosystem is not registered.
        """
        names = ecosystems or self.get_ecosystems()
        unknown = [name for name in names if not self.registry.is_adapter_available(name)]
        if unknown:
            raise ConfigurationError(f"unknown ecosystems: {', '.join(unknown)}")

        report = CycleReport(started_at=self.clock())
        logger.info(f"Starting crawl cycle over {', '.join(names)}")

        for name in names:
            if self.cancel_event.is_set():
                break
            report.ecosystems[name] = self.run_ecosystem(name)

        report.finished_at = self.clock()
        report.cancelled = self.cancel_event.is_set()

        totals = report.summary
        logger.info(
            f"Crawl cycle finished in {report.elapsed:.1f}s: "
            f"{totals['published']} published, {totals['withheld']} withheld, "
            f"{totals['failed']} failed of {totals['discovered']} discovered"
            + (" (cancelled)" if report.cancelled else "")
        )
        return report

    def run_ecosystem(self, name: str) -> EcosystemReport:
        """
        Crawl one ecosystem.

        A discovery failure ends the pass early; packages already discovered are
        still processed.
        """
        report = EcosystemReport(ecosystem=name)
        adapter = self.registry.create_adapter(
            name, self.config.fetcher_config(), http=self.http, cancel_event=self.cancel_event
        )

        logger.info(f"Fetching {name} packages...")

        with ThreadPoolExecutor(max_workers=max(1, self.config.concurrent_requests)) as executor:
            futures: Dict[Future, RepositoryDescriptor] = {}

            try:
                for descriptor in adapter.discover():
                    if self.cancel_event.is_set():
                        break
                    report.discovered += 1
                    futures[executor.submit(self._ingest, adapter, descriptor)] = descriptor
            except DiscoveryError as e:
                logger.error(f"Discovery failed for {name}: {e}")
                report.discovery_error = str(e)

            for future in as_completed(futures):
                descriptor = futures[future]
                try:
                    outcome = future.result()
                except CancelledError:
                    logger.info(f"Stopped fetching {descriptor.slug}: shutdown requested")
                    continue
                except EmptyVersionSetError as e:
                    logger.info(f"Withholding {descriptor.slug}: {e}")
                    report.withheld += 1
                    continue
                except Exception as e:
                    logger.error(f"Error fetching {name} package {descriptor.slug}: {e}")
                    report.failed += 1
                    report.errors[descriptor.slug] = str(e)
                    continue

                if outcome == PUBLISHED:
                    report.published += 1
                else:
                    report.withheld += 1

        logger.info(
            f"Done fetching {name} packages: {report.published} published, "
            f"{report.withheld} withheld, {report.failed} failed"
        )
        return report

    def _ingest(self, adapter: SourceAdapter, descriptor: RepositoryDescriptor) -> str:
        raw = adapter.fetch_facts(descriptor)
        if raw is None:
            logger.debug(f"{descriptor.slug} is not applicable to {adapter.name}")
            return WITHHELD

        record = self.normalizer.normalize(raw)
        self.index.upsert(record, ttl=self.config.expiration)

        logger.debug(f"Published {record.key} with {len(record.versions)} versions")
        return PUBLISHED


class IngestionScheduler:
    """
    Triggers crawl cycles at a fixed rate.

    The first cycle starts immediately. A trigger that arrives while a cycle is
    still running is skipped, so cycles never overlap.
    """

    def __init__(self, engine: IngestionEngine, interval: Optional[float] = None):
        """
        Initialize the scheduler.

        Args:
            engine: Engine whose cycles are scheduled.
            interval: Seconds between triggers. Defaults to ``fetch_interval``.
        """
        self.engine = engine
        self.interval = interval if interval is not None else engine.config.fetch_interval
        self.stop_event = engine.cancel_event
        self.skipped_triggers = 0
        self.last_report: Optional[CycleReport] = None

        self._cycle_lock = threading.Lock()
        self._ticker: Optional[threading.Thread] = None
        self._worker: Optional[threading.Thread] = None

    @property
    def cycle_in_progress(self) -> bool:
        return self._cycle_lock.locked()

    def trigger(self) -> Optional[CycleReport]:
        """
        Run a cycle unless one is already in progress.

        Returns:
            The cycle report, or None if the trigger was skipped.
        """
        if not self._cycle_lock.acquire(blocking=False):
            self._skip_trigger()
            return None

        try:
            self.last_report = self.engine.run_cycle()
            return self.last_report
        finally:
            self._cycle_lock.release()

    def start(self) -> None:
        """Start triggering cycles in a background thread."""
        if self._ticker and self._ticker.is_alive():
            return

        def tick():
            while not self.stop_event.is_set():
                # One worker at a time; stop() joins the one running the cycle
                if self._worker is not None and self._worker.is_alive():
                    self._skip_trigger()
                else:
                    self._worker = threading.Thread(
                        target=self._run_trigger, name="modindex-crawl", daemon=True
                    )
                    self._worker.start()
                if self.stop_event.wait(self.interval):
                    break

        self._ticker = threading.Thread(target=tick, name="modindex-scheduler", daemon=True)
        self._ticker.start()
        logger.info(f"Scheduler started, crawling every {self.interval}s")

    def _skip_trigger(self) -> None:
        self.skipped_triggers += 1
        logger.warning("Crawl cycle still in progress, skipping this trigger")

    def _run_trigger(self) -> None:
        try:
            self.trigger()
        except Exception as e:
            logger.error(f"Crawl cycle failed: {e}")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Request shutdown and wait for the running cycle to stop."""
        self.stop_event.set()

        if self._ticker and self._ticker.is_alive():
            self._ticker.join(timeout=timeout)
        if self._worker and self._worker.is_alive():
            self._worker.join(timeout=timeout)

        logger.info("Scheduler stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the scheduler is stopped.

        Returns:
            True if the scheduler stopped within ``timeout``.
        """
        return self.stop_event.wait(timeout)
