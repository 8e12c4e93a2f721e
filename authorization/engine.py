"""
Consent & Access Engine
=======================
Wires the ledger store, the shared settings, the height source, the
event journal and the four authorization components into one object.

Example:
    engine = ConsentAccessEngine.from_config()
    engine.settings.set_authority("authority-1")
    engine.researchers.verify_researcher("authority-1", "researcher-1")
    engine.data_registry.register(1, owner="patient-1")
    engine.consents.set_consent("patient-1", 1, "researcher-1", 100, "read-only")
    log_id = engine.access.request_access("researcher-1", 1, "read-only")
"""

from typing import Any, Dict, Optional

import structlog

from authorization.access_control import AccessOrchestrator
from authorization.consent_ledger import ConsentLedger, PatientDirectory
from authorization.data_registry import (
    DataRegistry,
    HttpDataRegistry,
    InMemoryDataRegistry,
)
from authorization.event_journal import EventJournal
from authorization.persistence import LedgerDB
from authorization.rate_limiter import RateLimiter
from authorization.researcher_registry import ResearcherRegistry
from authorization.settings import AuthorizationSettings
from config.config_loader import (
    get_authorization_defaults,
    get_clock_config,
    get_data_registry_config,
    get_logging_config,
    get_storage_config,
    load_config,
)
from core.clock import HeightSource, ManualClock, WallClockHeight
from core.exceptions import ConfigurationError
from core.utils import setup_logging

logger = structlog.get_logger(__name__)


class ConsentAccessEngine:
    """One ledger store shared by consent, researcher, rate and access components."""

    def __init__(
        self,
        db: Optional[LedgerDB] = None,
        data_registry: Optional[DataRegistry] = None,
        clock: Optional[HeightSource] = None,
        journal: Optional[EventJournal] = None,
        patients: Optional[PatientDirectory] = None,
        authority: Optional[str] = None,
        **settings_kwargs: Any,
    ):
        """
        Initialize engine.

        Args:
            db: Ledger database (in-memory if None).
            data_registry: Data registry collaborator (empty in-memory if None).
            clock: Height source (ManualClock at 0 if None).
            journal: Event journal (in-memory if None).
            patients: Patient directory (accepts everyone if None).
            authority: Authority fixed at deployment.
            **settings_kwargs: null_identity and tunable seeds for
                AuthorizationSettings.
        """
        self.db = db or LedgerDB(":memory:")
        self.clock = clock or ManualClock()
        self.journal = journal if journal is not None else EventJournal()
        self.data_registry = data_registry if data_registry is not None else InMemoryDataRegistry()

        try:
            self.settings = AuthorizationSettings(self.db, authority=authority, **settings_kwargs)
            self.consents = ConsentLedger(
                self.db, self.settings, self.clock, journal=self.journal, patients=patients
            )
            self.researchers = ResearcherRegistry(self.db, self.settings, clock=self.clock)
            self.rate_limiter = RateLimiter(self.db, self.settings, self.clock)
            self.access = AccessOrchestrator(
                self.db,
                self.clock,
                self.researchers,
                self.rate_limiter,
                self.consents,
                self.data_registry,
                journal=self.journal,
            )
        except Exception:
            self.db.close()
            raise

        logger.info(
            "Consent engine initialized",
            db_path=str(self.db.db_path),
            registry=type(self.data_registry).__name__,
            **{k: v for k, v in self.settings.snapshot().items() if k != "authority"},
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[Dict[str, Any]] = None,
        data_registry: Optional[DataRegistry] = None,
        clock: Optional[HeightSource] = None,
        patients: Optional[PatientDirectory] = None,
        configure_logging: bool = False,
    ) -> "ConsentAccessEngine":
        """
        Build an engine from configuration sections.

        Args:
            config: Parsed config dict (uses load_config() if None).
            data_registry: Overrides the configured registry backend.
            clock: Overrides the configured height source.
            patients: Patient directory.
            configure_logging: Apply the ``logging`` section via setup_logging.

        Raises:
            ConfigurationError: On an unknown backend or a missing base_url.
        """
        cfg = load_config() if config is None else config

        if configure_logging:
            log_cfg = get_logging_config(cfg)
            setup_logging(
                level=log_cfg["level"],
                log_format=log_cfg["format"],
                log_file=log_cfg["file"],
            )

        auth = get_authorization_defaults(cfg)
        storage = get_storage_config(cfg)

        journal = EventJournal(
            storage_path=storage["journal_path"],
            log_format=storage["journal_format"],
            buffer_size=storage["journal_buffer_size"],
            history_size=storage["journal_history_size"],
        )
        if data_registry is None:
            data_registry = _build_data_registry(get_data_registry_config(cfg))
        if clock is None:
            clock = _build_clock(get_clock_config(cfg))

        return cls(
            db=LedgerDB(storage["db_path"]),
            data_registry=data_registry,
            clock=clock,
            journal=journal,
            patients=patients,
            authority=auth["authority"],
            null_identity=auth["null_identity"],
            max_consents=auth["max_consents"],
            access_limit_per_cycle=auth["access_limit_per_cycle"],
            cycle_duration=auth["cycle_duration"],
            cycle_start_height=auth["cycle_start_height"],
        )

    def close(self) -> None:
        """
        Flush the journal and close the store (and an HTTP registry session).

        Raises:
            EventJournalError: If the final flush fails. The store and the
                registry session are closed regardless.
        """
        try:
            self.journal.flush()
        finally:
            if isinstance(self.data_registry, HttpDataRegistry):
                self.data_registry.close()
            self.db.close()
            logger.info("Consent engine closed")

    def __enter__(self) -> "ConsentAccessEngine":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def _build_data_registry(cfg: Dict[str, Any]) -> DataRegistry:
    backend = cfg["backend"]
    if backend == "memory":
        return InMemoryDataRegistry()
    if backend == "http":
        if not cfg["base_url"]:
            raise ConfigurationError(
                "HTTP data registry requires a base_url",
                config_key="data_registry.base_url",
            )
        return HttpDataRegistry(
            cfg["base_url"],
            auth_token=cfg["auth_token"],
            timeout=float(cfg["timeout"]),
        )
    raise ConfigurationError(
        f"Unknown data registry backend: {backend}",
        config_key="data_registry.backend",
    )


def _build_clock(cfg: Dict[str, Any]) -> HeightSource:
    backend = cfg["backend"]
    if backend == "manual":
        return ManualClock()
    if backend == "wall":
        try:
            block_interval = float(cfg["block_interval"])
        except (TypeError, ValueError):
            block_interval = 0.0
        if block_interval <= 0:
            raise ConfigurationError(
                f"block_interval must be a positive number of seconds, got {cfg['block_interval']!r}",
                config_key="clock.block_interval",
            )
        return WallClockHeight(block_interval=block_interval)
    raise ConfigurationError(
        f"Unknown clock backend: {backend}",
        config_key="clock.backend",
    )
