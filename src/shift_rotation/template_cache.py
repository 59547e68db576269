"""
Shift Template Cache

Holds the ordered set of shift templates used to build every day. Templates
come from the first source that yields a valid set:

1. the remote configuration endpoint,
2. the persisted copy of the last successful load,
3. built-in defaults (Morning, Afternoon, Night).

Readers work on an immutable snapshot that is swapped in one assignment, so
lookups never take a lock. Remote loads run on a single background worker
and concurrent requests share the same in-flight future.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from .exceptions import (ConfigurationUnavailableError, DuplicateTemplateError, InvalidTemplateError,
                         TemplateParseError, TemplateStoreError)
from .models import ShiftTemplate, normalize_color
from .store import MemoryTemplateStore, TemplateStore, make_record

logger = logging.getLogger(__name__)

MIN_TEMPLATES = 1
MAX_TEMPLATES = 8
DEFAULT_TEMPLATE_COUNT = 3

DEFAULT_COLORS = (
    "#B3E5FC", "#FFE0B2", "#E1BEE7", "#C8E6C9",
    "#FFCDD2", "#F0F4C3", "#D1C4E9", "#FFCCBC"
)

REQUEST_HEADERS = {
    "Accept": "application/json",
    "User-Agent": "shift-rotation/1.0"
}

_STANDARD_SHIFTS = (
    ("Morning", 6),
    ("Afternoon", 14),
    ("Night", 22)
)


class CacheState(Enum):
    NEW = "new"
    READY = "ready"
    CLOSED = "closed"


class TemplateSource(Enum):
    REMOTE = "remote"
    PERSISTED = "persisted"
    DEFAULTS = "defaults"
    RUNTIME = "runtime"


@dataclass(frozen=True)
class CacheLoadResult:
    """Outcome of one population attempt"""
    success: bool
    source: Optional[TemplateSource]
    template_count: int = 0
    errors: Tuple[str, ...] = ()
    used_defaults: bool = False
    error: Optional[Exception] = None


class _TemplateSnapshot:
    """Immutable view of a published template set with its lookup indexes"""

    __slots__ = ("templates", "source", "by_id", "by_name", "index_by_id")

    def __init__(self, templates: Sequence[ShiftTemplate], source: TemplateSource):
        self.templates = tuple(templates)
        self.source = source
        self.by_id = {t.id: t for t in self.templates}
        self.by_name = {t.name: t for t in self.templates}
        self.index_by_id = {t.id: i for i, t in enumerate(self.templates)}


def clamp_template_count(count: int) -> int:
    clamped = max(MIN_TEMPLATES, min(MAX_TEMPLATES, count))
    if clamped != count:
        logger.warning(f"Template count {count} out of range, using {clamped}")
    return clamped


def build_default_templates(count: int = DEFAULT_TEMPLATE_COUNT) -> List[ShiftTemplate]:
    """
    Build the default template set.

    Three templates give the standard Morning/Afternoon/Night rotation;
    any other count splits the day evenly starting at 06:00.
    """
    count = clamp_template_count(count)
    templates = []
    if count == DEFAULT_TEMPLATE_COUNT:
        for index, (name, start_hour) in enumerate(_STANDARD_SHIFTS):
            end_hour = (start_hour + 8) % 24
            templates.append(ShiftTemplate(
                name=name,
                description=f"{name} shift {start_hour:02d}:00-{end_hour:02d}:00",
                start_hour=start_hour,
                duration_hours=8,
                color=DEFAULT_COLORS[index]
            ))
        return templates

    span = 24 * 60 // count
    for index in range(count):
        start = (6 * 60 + index * span) % (24 * 60)
        templates.append(ShiftTemplate(
            name=f"Shift {index + 1}",
            description=f"Shift {index + 1} of {count}",
            start_hour=start // 60,
            start_minute=start % 60,
            duration_hours=span // 60,
            duration_minutes=span % 60,
            color=DEFAULT_COLORS[index % len(DEFAULT_COLORS)]
        ))
    return templates


def _required_int(entry: Dict[str, Any], key: str) -> int:
    if key not in entry:
        raise InvalidTemplateError(f"missing required field '{key}'")
    return _optional_int(entry, key)


def _optional_int(entry: Dict[str, Any], key: str, default: int = 0) -> int:
    value = entry.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidTemplateError(f"field '{key}' must be an integer, got {value!r}")
    return value


def _parse_entry(entry: Any, position: int) -> ShiftTemplate:
    if not isinstance(entry, dict):
        raise InvalidTemplateError("entry is not an object")
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise InvalidTemplateError("missing required field 'name'")

    color = DEFAULT_COLORS[position % len(DEFAULT_COLORS)]
    if entry.get("color") is not None:
        try:
            color = normalize_color(entry["color"])
        except InvalidTemplateError as e:
            logger.warning(f"Template '{name}': {e}, using default color {color}")

    kwargs = dict(
        name=name.strip(),
        description=str(entry.get("description") or ""),
        start_hour=_required_int(entry, "startHour"),
        start_minute=_optional_int(entry, "startMinute"),
        duration_hours=_required_int(entry, "durationHours"),
        duration_minutes=_optional_int(entry, "durationMinutes"),
        color=color,
        is_rest=bool(entry.get("restType", False))
    )
    if entry.get("id"):
        kwargs["id"] = str(entry["id"])
    return ShiftTemplate(**kwargs)


def parse_templates(document: Any, strict: bool = False) -> Tuple[List[ShiftTemplate], List[str]]:
    """
    Parse a ``{"shifts": [...]}`` document into templates.

    In strict mode any invalid entry rejects the document. Otherwise bad
    entries are dropped and reported in the returned problem list. Raises
    TemplateParseError when nothing usable remains.
    """
    if not isinstance(document, dict) or not isinstance(document.get("shifts"), list):
        raise TemplateParseError("Document has no 'shifts' list")

    templates: List[ShiftTemplate] = []
    problems: List[str] = []
    names = set()
    ids = set()

    for position, entry in enumerate(document["shifts"]):
        try:
            template = _parse_entry(entry, position)
            if template.name in names:
                raise InvalidTemplateError(f"duplicate name '{template.name}'")
            if template.id in ids:
                raise InvalidTemplateError(f"duplicate id '{template.id}'")
        except InvalidTemplateError as e:
            message = f"shift #{position}: {e}"
            if strict:
                raise TemplateParseError(f"Rejected template document, {message}")
            logger.warning(f"Dropping invalid template entry, {message}")
            problems.append(message)
            continue
        names.add(template.name)
        ids.add(template.id)
        templates.append(template)

    if len(templates) > MAX_TEMPLATES:
        logger.warning(f"Document has {len(templates)} templates, keeping the first {MAX_TEMPLATES}")
        problems.append(f"truncated to {MAX_TEMPLATES} templates")
        templates = templates[:MAX_TEMPLATES]

    if not templates:
        raise TemplateParseError("Document contains no valid templates")
    return templates, problems


class ShiftTemplateCache:
    """Process-wide registry of shift templates with a three-tier loader"""

    def __init__(self, store: Optional[TemplateStore] = None, session=None, strict: bool = False,
                 timeout: float = 10.0, max_cache_age: Optional[timedelta] = None):
        self.store = store if store is not None else MemoryTemplateStore()
        self._owns_session = session is None
        self.session = session if session is not None else requests.Session()
        self.strict = strict
        self.timeout = timeout
        self.max_cache_age = max_cache_age
        self.state = CacheState.NEW

        self._snapshot: Optional[_TemplateSnapshot] = None
        self._write_lock = threading.RLock()
        self._pending: Optional[Future] = None
        self._pending_lock = threading.Lock()
        self._last_endpoint: Optional[str] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="template-cache")

    # Population

    def initialize(self, count: int = DEFAULT_TEMPLATE_COUNT) -> CacheLoadResult:
        """Populate from the persisted copy, or from `count` defaults"""
        self._ensure_open()
        count = clamp_template_count(count)
        errors: List[str] = []
        try:
            with self._write_lock:
                persisted = self._load_persisted(errors, check_age=False)
                if persisted:
                    self._publish(persisted, TemplateSource.PERSISTED)
                    logger.info(f"Template cache initialized with {len(persisted)} persisted templates")
                    return CacheLoadResult(True, TemplateSource.PERSISTED, len(persisted), tuple(errors))

                defaults = build_default_templates(count)
                self._publish(defaults, TemplateSource.DEFAULTS)
                self._persist(defaults, TemplateSource.DEFAULTS)
                logger.info(f"Template cache initialized with {len(defaults)} default templates")
                return CacheLoadResult(True, TemplateSource.DEFAULTS, len(defaults), tuple(errors),
                                       used_defaults=True)
        except Exception as e:
            logger.error(f"Template cache initialization failed: {e}", exc_info=True)
            errors.append(f"defaults: {e}")
            error = ConfigurationUnavailableError(f"No template source could be used: {'; '.join(errors)}")
            return CacheLoadResult(False, None, 0, tuple(errors), error=error)

    def initialize_from_remote(self, endpoint: str) -> "Future[CacheLoadResult]":
        """Populate asynchronously: remote, then persisted copy, then defaults"""
        self._ensure_open()
        return self._submit(endpoint, fallback=True)

    def refresh(self, endpoint: Optional[str] = None) -> "Future[CacheLoadResult]":
        """
        Re-fetch the remote configuration.

        On failure the current snapshot stays in place; the fallback tiers
        are only used when nothing has been published yet.
        """
        self._ensure_open()
        endpoint = endpoint or self._last_endpoint
        if not endpoint:
            future: Future = Future()
            future.set_result(CacheLoadResult(
                False, self.source, self.template_count if self._snapshot else 0,
                ("no remote endpoint configured",)))
            return future
        return self._submit(endpoint, fallback=not self.is_initialized)

    def _submit(self, endpoint: str, fallback: bool) -> Future:
        with self._pending_lock:
            if self._pending is not None and not self._pending.done():
                logger.debug("Remote template load already in flight, sharing it")
                return self._pending
            self._last_endpoint = endpoint
            future = self._executor.submit(self._load_with_fallback, endpoint, fallback)
            self._pending = future
            return future

    def _load_with_fallback(self, endpoint: str, fallback: bool) -> CacheLoadResult:
        errors: List[str] = []
        try:
            try:
                templates = self._fetch_remote(endpoint, errors)
                with self._write_lock:
                    self._publish(templates, TemplateSource.REMOTE)
                    self._persist(templates, TemplateSource.REMOTE)
                logger.info(f"Loaded {len(templates)} templates from {endpoint}")
                return CacheLoadResult(True, TemplateSource.REMOTE, len(templates), tuple(errors))
            except (requests.exceptions.RequestException, TemplateParseError) as e:
                logger.warning(f"Remote template load from {endpoint} failed: {e}")
                errors.append(f"remote: {e}")

            if not fallback:
                snapshot = self._snapshot
                return CacheLoadResult(False, snapshot.source if snapshot else None,
                                       len(snapshot.templates) if snapshot else 0, tuple(errors))

            with self._write_lock:
                persisted = self._load_persisted(errors, check_age=True)
                if persisted:
                    self._publish(persisted, TemplateSource.PERSISTED)
                    logger.info(f"Using {len(persisted)} persisted templates")
                    return CacheLoadResult(True, TemplateSource.PERSISTED, len(persisted), tuple(errors))

                defaults = build_default_templates(DEFAULT_TEMPLATE_COUNT)
                self._publish(defaults, TemplateSource.DEFAULTS)
                logger.warning("No remote or persisted templates available, using defaults")
                return CacheLoadResult(True, TemplateSource.DEFAULTS, len(defaults), tuple(errors),
                                       used_defaults=True)

        except Exception as e:
            logger.error(f"Template cache population failed: {e}", exc_info=True)
            errors.append(f"defaults: {e}")
            error = ConfigurationUnavailableError(f"No template source could be used: {'; '.join(errors)}")
            return CacheLoadResult(False, None, 0, tuple(errors), error=error)

    def _fetch_remote(self, endpoint: str, errors: List[str]) -> List[ShiftTemplate]:
        response = self.session.get(endpoint, headers=REQUEST_HEADERS, timeout=self.timeout)
        response.raise_for_status()
        try:
            document = response.json()
        except ValueError as e:
            raise TemplateParseError(f"Response is not valid JSON: {e}")
        templates, problems = parse_templates(document, strict=self.strict)
        errors.extend(f"remote: {problem}" for problem in problems)
        return templates

    def _load_persisted(self, errors: List[str], check_age: bool) -> Optional[List[ShiftTemplate]]:
        try:
            record = self.store.load()
        except TemplateStoreError as e:
            logger.warning(f"Persisted templates unavailable: {e}")
            errors.append(f"persisted: {e}")
            return None
        except Exception as e:
            # Any store failure only rules out this tier
            logger.error(f"Template store failed to load: {e}", exc_info=True)
            errors.append(f"persisted: {e}")
            return None
        if record is None:
            return None

        if check_age and self._is_stale(record):
            logger.info("Persisted templates are older than the maximum cache age, ignoring them")
            errors.append("persisted: stale")
            return None

        try:
            templates, problems = parse_templates(record, strict=False)
        except TemplateParseError as e:
            logger.warning(f"Persisted templates unusable: {e}")
            errors.append(f"persisted: {e}")
            return None
        errors.extend(f"persisted: {problem}" for problem in problems)
        return templates

    def _is_stale(self, record: Dict[str, Any]) -> bool:
        if self.max_cache_age is None:
            return False
        try:
            last_sync = datetime.fromisoformat(record.get("lastSync", ""))
        except (TypeError, ValueError):
            return True
        return datetime.now() - last_sync > self.max_cache_age

    def _publish(self, templates: Sequence[ShiftTemplate], source: TemplateSource):
        if self.state is CacheState.CLOSED:
            logger.debug("Template cache closed, discarding load result")
            return
        self._snapshot = _TemplateSnapshot(templates, source)
        self.state = CacheState.READY

    def _persist(self, templates: Sequence[ShiftTemplate], source: TemplateSource):
        try:
            self.store.save(make_record(templates, source.value))
        except Exception as e:
            logger.error(f"Failed to persist templates: {e}", exc_info=True)

    def _ensure_open(self):
        if self.state is CacheState.CLOSED:
            raise ConfigurationUnavailableError("Template cache is closed")

    def _current(self) -> _TemplateSnapshot:
        snapshot = self._snapshot
        if snapshot is not None:
            return snapshot
        self._ensure_open()
        with self._write_lock:
            if self._snapshot is None:
                logger.warning("Template cache read before initialization, using in-memory defaults")
                self._snapshot = _TemplateSnapshot(build_default_templates(), TemplateSource.DEFAULTS)
            return self._snapshot

    # Lookups

    @property
    def is_initialized(self) -> bool:
        return self.state is CacheState.READY and self._snapshot is not None

    @property
    def source(self) -> Optional[TemplateSource]:
        snapshot = self._snapshot
        return snapshot.source if snapshot else None

    @property
    def template_count(self) -> int:
        return len(self._current().templates)

    def get_template(self, index: int) -> Optional[ShiftTemplate]:
        templates = self._current().templates
        if 0 <= index < len(templates):
            return templates[index]
        return None

    def get_template_by_name(self, name: str) -> Optional[ShiftTemplate]:
        if not name:
            return None
        return self._current().by_name.get(name.strip())

    def get_template_by_id(self, template_id: str) -> Optional[ShiftTemplate]:
        return self._current().by_id.get(template_id)

    def get_index_by_id(self, template_id: str) -> int:
        return self._current().index_by_id.get(template_id, -1)

    def get_all_templates(self) -> Tuple[ShiftTemplate, ...]:
        return self._current().templates

    def get_id_to_name_mapping(self) -> Dict[str, str]:
        return {t.id: t.name for t in self._current().templates}

    # Runtime changes

    def add_template(self, template: ShiftTemplate) -> int:
        """Append a template and return its index"""
        with self._write_lock:
            snapshot = self._current()
            existing = snapshot.index_by_id.get(template.id)
            if existing is not None:
                logger.info(f"Template {template.id} already registered at index {existing}")
                return existing
            if template.name in snapshot.by_name:
                raise DuplicateTemplateError(f"A template named '{template.name}' already exists")
            if len(snapshot.templates) >= MAX_TEMPLATES:
                raise InvalidTemplateError(f"At most {MAX_TEMPLATES} templates can be configured")

            templates = snapshot.templates + (template,)
            self._publish(templates, TemplateSource.RUNTIME)
            self._persist(templates, TemplateSource.RUNTIME)
            logger.info(f"Added template '{template.name}' at index {len(templates) - 1}")
            return len(templates) - 1

    def replace_template(self, template: ShiftTemplate) -> bool:
        """Swap in an updated template sharing an existing id"""
        with self._write_lock:
            snapshot = self._current()
            index = snapshot.index_by_id.get(template.id)
            if index is None:
                logger.warning(f"Cannot replace unknown template {template.id}")
                return False
            clash = snapshot.by_name.get(template.name)
            if clash is not None and clash.id != template.id:
                raise DuplicateTemplateError(f"A template named '{template.name}' already exists")

            templates = list(snapshot.templates)
            templates[index] = template
            self._publish(templates, TemplateSource.RUNTIME)
            self._persist(templates, TemplateSource.RUNTIME)
            logger.info(f"Replaced template at index {index} with '{template.name}'")
            return True

    def close(self):
        """Stop the background worker and drop the published templates"""
        if self.state is CacheState.CLOSED:
            return
        with self._write_lock:
            self.state = CacheState.CLOSED
            self._snapshot = None
        self._executor.shutdown(wait=True, cancel_futures=True)
        if self._owns_session:
            self.session.close()
        logger.info("Template cache closed")
