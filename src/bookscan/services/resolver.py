from __future__ import annotations

import asyncio
import logging
import time

from bookscan.core.metrics import EXTERNAL_API_COUNT, EXTERNAL_API_DURATION
from bookscan.domain.models import BibliographicRecord, DataSource, ResolutionPolicy
from bookscan.domain.ports import BibliographicSourcePort, ExternalApiError
from bookscan.services.source_health import LookupOutcome, SourceHealthMonitor

logger = logging.getLogger(__name__)


class BibliographyResolver:
    """
    Löst einen Identifier über mehrere Datenquellen hinweg auf.
    Die Reihenfolge der Quellen wird über die Konfiguration gesteuert.

    Every adapter call is bounded by ``timeout_seconds``. Timeouts, transient
    API errors and unexpected adapter failures all count as "not found" for the
    fallback chain, so one broken source never aborts resolution.
    """

    def __init__(
        self,
        adapter_registry: dict[DataSource, BibliographicSourcePort],
        lookup_order: list[str],
        policy: ResolutionPolicy = ResolutionPolicy.SHORT_CIRCUIT,
        timeout_seconds: float = 5.0,
        health_monitor: SourceHealthMonitor | None = None,
        deprioritize_degraded: bool = False,
    ) -> None:
        self._adapter_registry = adapter_registry
        self._policy = policy
        self._timeout = timeout_seconds
        self._health = health_monitor or SourceHealthMonitor()
        self._deprioritize_degraded = deprioritize_degraded
        self._order = self._validate_order(lookup_order)

    @property
    def policy(self) -> ResolutionPolicy:
        return self._policy

    @property
    def health(self) -> SourceHealthMonitor:
        return self._health

    def _validate_order(self, lookup_order: list[str]) -> list[DataSource]:
        order: list[DataSource] = []
        for source_name in lookup_order:
            try:
                source_enum = DataSource(source_name)
            except ValueError:
                logger.warning("Invalid source '%s' in RESOLVER_SOURCE_ORDER", source_name)
                continue
            if source_enum not in self._adapter_registry:
                logger.warning("No adapter found for source '%s'", source_name)
                continue
            if source_enum not in order:
                order.append(source_enum)
        return order

    def effective_order(self) -> list[DataSource]:
        if self._deprioritize_degraded:
            return self._health.prioritize(self._order)
        return list(self._order)

    async def resolve_bibliography(
        self, identifier: str, policy: ResolutionPolicy | None = None
    ) -> BibliographicRecord:
        """
        Never raises for missing data: if every source is exhausted the result
        is ``BibliographicRecord.empty(identifier)``.
        """
        policy = policy or self._policy
        result: BibliographicRecord | None = None

        for source in self.effective_order():
            record = await self._query(self._adapter_registry[source], identifier)
            if record is None:
                continue

            if result is None:
                result = record
                if policy is ResolutionPolicy.SHORT_CIRCUIT:
                    break
            else:
                result = result.fill_missing_from(record)

            if not result.missing_fields:
                break

        if result is None:
            logger.info("No source returned data for %s", identifier)
            return BibliographicRecord.empty(identifier)
        return result

    async def _query(
        self, adapter: BibliographicSourcePort, identifier: str
    ) -> BibliographicRecord | None:
        source = adapter.source
        record: BibliographicRecord | None = None
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self._timeout):
                record = await adapter.lookup(identifier)
        except TimeoutError:
            outcome = LookupOutcome.TIMEOUT
            logger.warning(
                "Source '%s' timed out after %.1fs for %s", source, self._timeout, identifier
            )
        except ExternalApiError as e:
            outcome = LookupOutcome.ERROR
            logger.warning("Source '%s' failed for %s: %s", source, identifier, e.detail)
        except Exception:
            outcome = LookupOutcome.ERROR
            logger.exception("Unexpected error from source '%s' for %s", source, identifier)
        else:
            if record is None or record.is_empty:
                record = None
                outcome = LookupOutcome.NOT_FOUND
                logger.debug("Source '%s' has no data for %s", source, identifier)
            else:
                outcome = LookupOutcome.FOUND
        finally:
            EXTERNAL_API_DURATION.labels(source=source).observe(time.perf_counter() - started)

        EXTERNAL_API_COUNT.labels(source=source, status=outcome).inc()
        self._health.record(source, outcome)
        return record
