"""
Staged Module Loader for hostbus.

Purpose
-------
Defers loading of dependent Python modules until a readiness milestone is
reached, and guarantees each module is loaded at most once per process.

Responsibilities
----------------
- Queue module specifiers for the BOOTSTRAP or RUNTIME phase
- Load a whole phase concurrently when its gate opens, never aborting the
  batch because one module failed
- Load late registrations immediately once their phase already ran
- Track load timing and errors per module
- Log a loading summary per phase

Non-Responsibilities
--------------------
- Deciding when a phase runs (handled by LifecycleController)
- How a module is loaded (injected load capability, `importlib` by default)

Design Decisions
----------------
- **Gate before await**: a phase's gate is set before its batch is awaited,
  so a module registered by another module of the same phase loads at once
- **LoadedSet keyed by resolved name**: relative specifiers are resolved to
  absolute dotted names first, so duplicates collapse
- **No timeouts**: a hung load only blocks its own phase join
"""

from __future__ import annotations

import importlib
import importlib.util
import time
from dataclasses import dataclass, field
from enum import Enum
from types import ModuleType
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from src.core.config.manager import ConfigManager
from src.core.event.scheduler import BackgroundTasks, is_awaitable, settle_all
from src.core.exceptions import InvalidArgumentError, ModuleLoadError
from src.core.logging.logger import LogContext, get_logger

logger = get_logger(__name__)

LoadCapability = Callable[[str], Union[Any, Awaitable[Any]]]
CancelRegistration = Callable[[], None]


class Phase(Enum):
    """Startup phases, in the order the lifecycle controller runs them."""

    BOOTSTRAP = "bootstrap"
    RUNTIME = "runtime"

    @classmethod
    def from_value(cls, value: Union["Phase", str]) -> "Phase":
        """
        Parse a phase from an enum member or its string value.

        Raises
        ------
        InvalidArgumentError:
            If `value` names no phase.

        Example
        -------
        >>> Phase.from_value("Bootstrap") is Phase.BOOTSTRAP
        True
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise InvalidArgumentError(
            "phase", f"must be one of {[p.value for p in cls]}", value
        )


@dataclass(eq=False)
class ModuleEntry:
    """A queued registration. Compared by identity so cancel removes exactly it."""

    specifier: str
    phase: Phase


@dataclass
class LoadResult:
    """Result of loading a single module."""

    specifier: str
    success: bool
    duration_ms: float
    error: Optional[ModuleLoadError] = None
    error_type: Optional[str] = None


@dataclass
class PhaseReport:
    """
    Outcome of one `run_phase` call.

    Attributes
    ----------
    phase:
        The phase that ran.
    results:
        One LoadResult per module actually loaded by this run.
    skipped:
        Specifiers picked up but already in the loaded set.
    duration_ms:
        Wall time of the whole batch.
    """

    phase: Phase
    results: List[LoadResult] = field(default_factory=list)
    skipped: int = 0
    duration_ms: float = 0.0

    @property
    def loaded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


def resolve_specifier(specifier: Any, anchor: Optional[str] = None) -> str:
    """
    Resolve a module specifier to its canonical absolute dotted name.

    Parameters
    ----------
    specifier:
        Absolute (`"plugins.audit"`) or relative (`".audit"`) module name.
    anchor:
        Package that relative specifiers are resolved against.

    Raises
    ------
    InvalidArgumentError:
        If the specifier is not a non-empty string, or is relative and cannot
        be resolved against `anchor`.

    Examples
    --------
    >>> resolve_specifier("..audit", anchor="plugins.core")
    'plugins.audit'
    """
    if not isinstance(specifier, str) or not specifier.strip():
        raise InvalidArgumentError("specifier", "must be a non-empty string", specifier)

    name = specifier.strip()
    if not name.startswith("."):
        return name

    if not anchor:
        raise InvalidArgumentError(
            "specifier",
            f"relative specifier '{name}' needs an anchor package",
            specifier,
        )

    try:
        return importlib.util.resolve_name(name, anchor)
    except (ImportError, ValueError) as exc:
        raise InvalidArgumentError(
            "specifier", f"cannot resolve '{name}' against '{anchor}': {exc}", specifier
        ) from exc


def import_module_loader(specifier: str) -> ModuleType:
    """Default load capability: a plain `importlib.import_module`."""
    return importlib.import_module(specifier)


class StagedLoader:
    """
    Phase-gated, exactly-once module loader.

    Thread Safety
    -------------
    Not thread-safe. Designed for single-threaded asyncio usage.

    Examples
    --------
    >>> loader = StagedLoader()
    >>> cancel = loader.register_module("plugins.audit", Phase.BOOTSTRAP)
    >>> report = await loader.run_phase(Phase.BOOTSTRAP)
    >>> report.loaded
    1
    """

    def __init__(
        self,
        load: Optional[LoadCapability] = None,
        *,
        anchor: Optional[str] = None,
        config_manager: Any = None,
    ) -> None:
        self._load: LoadCapability = load or import_module_loader
        self._anchor = anchor
        self._config_manager = config_manager or ConfigManager

        self._queue: List[ModuleEntry] = []
        self._loaded: set[str] = set()
        self._results: Dict[str, LoadResult] = {}
        self._gates: Dict[Phase, bool] = {phase: False for phase in Phase}
        self._background = BackgroundTasks(logger, owner="staged_loader")

        self._default_phase = self._load_default_phase()

    def _load_default_phase(self) -> Phase:
        value = self._config_manager.get("core.loader.default_phase", Phase.RUNTIME.value)
        try:
            return Phase.from_value(value)
        except InvalidArgumentError:
            logger.warning(
                "Invalid default loader phase in config, using runtime",
                extra={"config_key": "core.loader.default_phase", "value": repr(value)},
            )
            return Phase.RUNTIME

    # ------------------------------------------------------------------ #
    # Registration
    # ------------------------------------------------------------------ #

    def register_module(
        self,
        specifier: str,
        phase: Optional[Union[Phase, str]] = None,
        *,
        anchor: Optional[str] = None,
    ) -> CancelRegistration:
        """
        Queue `specifier` for loading in `phase`.

        If the phase already ran, the module is loaded right away instead:
        as a background task when an event loop is running, synchronously
        otherwise.

        Parameters
        ----------
        specifier:
            Module name, absolute or relative to `anchor`.
        phase:
            Phase.BOOTSTRAP or Phase.RUNTIME (or their string values).
            Defaults to `core.loader.default_phase` (runtime).
        anchor:
            Package for relative specifiers. Falls back to the loader's anchor.

        Returns
        -------
        CancelRegistration:
            Idempotent callable that removes the entry while it is still
            queued. Has no effect once the entry was picked up.

        Raises
        ------
        InvalidArgumentError:
            For an empty or unresolvable specifier or an unknown phase.
        """
        target_phase = self._default_phase if phase is None else Phase.from_value(phase)
        resolved = resolve_specifier(specifier, anchor or self._anchor)
        entry = ModuleEntry(specifier=resolved, phase=target_phase)

        if self._gates[target_phase]:
            logger.debug(
                "Phase already completed; loading module immediately",
                extra={"specifier": resolved, "phase": target_phase.value},
            )
            self._background.spawn(self.load_one(resolved), name=f"load:{resolved}")
            return lambda: None

        self._queue.append(entry)
        logger.debug(
            "Module registered",
            extra={"specifier": resolved, "phase": target_phase.value},
        )

        def cancel() -> None:
            if entry in self._queue:
                self._queue.remove(entry)
                logger.debug(
                    "Module registration cancelled",
                    extra={"specifier": resolved, "phase": target_phase.value},
                )

        return cancel

    # ------------------------------------------------------------------ #
    # Loading
    # ------------------------------------------------------------------ #

    async def run_phase(self, phase: Union[Phase, str]) -> PhaseReport:
        """
        Open the gate of `phase` and load every module queued for it.

        All loads run concurrently and are awaited together; a failing module
        never prevents the others from loading. Failures are summarized in a
        single ERROR record. Loads started by registrations made during the
        phase are awaited too before the report is returned.
        """
        phase = Phase.from_value(phase)
        self._gates[phase] = True

        picked = [entry for entry in self._queue if entry.phase is phase]
        self._queue = [entry for entry in self._queue if entry.phase is not phase]
        specifiers = list(dict.fromkeys(entry.specifier for entry in picked))

        report = PhaseReport(phase=phase)
        if not specifiers:
            logger.debug("No modules queued for phase", extra={"phase": phase.value})
            return report

        start_time = time.perf_counter()
        async with LogContext(component="staged_loader", operation="run_phase", phase=phase.value):
            logger.info(
                "Loading phase modules",
                extra={"phase": phase.value, "count": len(specifiers)},
            )

            outcomes = await settle_all(self.load_one(s) for s in specifiers)

            for specifier, outcome in zip(specifiers, outcomes):
                if not outcome.ok:
                    report.results.append(
                        self._record_failure(specifier, outcome.reason, 0.0)
                    )
                elif outcome.value is None:
                    report.skipped += 1
                else:
                    report.results.append(outcome.value)

            report.duration_ms = (time.perf_counter() - start_time) * 1000
            self._log_summary(report)

            # Modules registered for this phase while it loaded.
            await self._background.wait_idle()

        return report

    async def load_one(self, specifier: str) -> Optional[LoadResult]:
        """
        Load `specifier` unless it is already in the loaded set.

        Returns
        -------
        Optional[LoadResult]:
            None if the module was loaded before, otherwise the outcome.
            Load failures are logged and recorded, never raised.
        """
        resolved = resolve_specifier(specifier, self._anchor)
        if resolved in self._loaded:
            logger.debug("Module already loaded", extra={"specifier": resolved})
            return None
        self._loaded.add(resolved)

        start_time = time.perf_counter()
        try:
            outcome = self._load(resolved)
            if is_awaitable(outcome):
                await outcome
        except Exception as exc:
            duration_ms = (time.perf_counter() - start_time) * 1000
            return self._record_failure(resolved, exc, duration_ms)

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Module loaded successfully",
            extra={"specifier": resolved, "duration_ms": round(duration_ms, 2)},
        )
        result = LoadResult(specifier=resolved, success=True, duration_ms=duration_ms)
        self._results[resolved] = result
        return result

    def _record_failure(
        self, specifier: str, exc: Optional[BaseException], duration_ms: float
    ) -> LoadResult:
        original = exc if exc is not None else RuntimeError("unknown load failure")
        error = ModuleLoadError(specifier, original)

        logger.error(
            "Failed to load module",
            extra={
                "specifier": specifier,
                "error": str(original),
                "error_type": type(original).__name__,
                "duration_ms": round(duration_ms, 2),
                "suggestion": self._get_error_suggestion(original),
            },
            exc_info=(type(original), original, original.__traceback__),
        )

        result = LoadResult(
            specifier=specifier,
            success=False,
            duration_ms=duration_ms,
            error=error,
            error_type=type(original).__name__,
        )
        self._results[specifier] = result
        return result

    @staticmethod
    def _get_error_suggestion(error: BaseException) -> str:
        suggestions = {
            "ModuleNotFoundError": "Check the module name and that its package is importable.",
            "ImportError": "Check that all dependencies of the module are installed.",
            "SyntaxError": "Fix syntax errors in the module.",
            "NameError": "Check for undefined names at module import time.",
            "AttributeError": "Verify attributes the module touches while importing exist.",
        }
        return suggestions.get(type(error).__name__, "Check the module and logs for details.")

    def _log_summary(self, report: PhaseReport) -> None:
        extra = {
            "phase": report.phase.value,
            "loaded": report.loaded,
            "failed_count": report.failed,
            "skipped": report.skipped,
            "duration_ms": round(report.duration_ms, 2),
        }
        if report.failed:
            logger.error(
                "%d module load(s) failed during %s phase",
                report.failed,
                report.phase.value,
                extra=extra,
            )
        else:
            logger.info("Phase modules loaded", extra=extra)

    async def wait_idle(self) -> None:
        """Wait for immediate (post-gate) loads that are still running."""
        await self._background.wait_idle()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def is_loaded(self, specifier: str) -> bool:
        return resolve_specifier(specifier, self._anchor) in self._loaded

    def phase_completed(self, phase: Union[Phase, str]) -> bool:
        return self._gates[Phase.from_value(phase)]

    def pending(self, phase: Optional[Union[Phase, str]] = None) -> List[str]:
        """Specifiers still queued, optionally for one phase only."""
        if phase is None:
            return [entry.specifier for entry in self._queue]
        target = Phase.from_value(phase)
        return [entry.specifier for entry in self._queue if entry.phase is target]

    @property
    def loaded_specifiers(self) -> frozenset[str]:
        return frozenset(self._loaded)

    @property
    def load_results(self) -> Dict[str, LoadResult]:
        return dict(self._results)

    def register_many(
        self,
        specifiers: Iterable[str],
        phase: Optional[Union[Phase, str]] = None,
        *,
        anchor: Optional[str] = None,
    ) -> List[CancelRegistration]:
        """Register several specifiers for the same phase, in order."""
        return [self.register_module(s, phase, anchor=anchor) for s in specifiers]
