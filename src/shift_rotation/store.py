"""
Persisted Template Store

Keeps the last known set of shift templates between runs. The JSON store
writes through a temporary file with an atomic rename and keeps a `.bak`
copy of the previous record to recover from a corrupted main file.
"""

import copy
import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

from .exceptions import TemplateMigrationError, TemplateStoreError

logger = logging.getLogger(__name__)

CACHE_VERSION = 2


def make_record(templates: Iterable, source: str) -> Dict[str, Any]:
    """Build the persisted record for a template set"""
    return {
        "cacheVersion": CACHE_VERSION,
        "lastSync": datetime.now().isoformat(timespec="seconds"),
        "source": source,
        "shifts": [template.to_dict() for template in templates]
    }


class TemplateStore:
    """Base class for persisted template stores"""

    def load(self) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def save(self, record: Dict[str, Any]):
        raise NotImplementedError

    def clear(self):
        raise NotImplementedError

    def _validate_and_migrate_record(self, record: Any) -> Tuple[Dict[str, Any], bool]:
        """
        Validate a persisted record and migrate it to the current version.

        Returns the record and whether it was changed. Records from version 1
        lack template ids; each entry gets a fresh one.
        """
        if not isinstance(record, dict) or not isinstance(record.get("shifts"), list):
            raise TemplateMigrationError("Persisted template record has no 'shifts' list")

        version = record.get("cacheVersion", 1)
        if isinstance(version, bool) or not isinstance(version, int):
            raise TemplateMigrationError(f"Unreadable cache version: {version!r}")
        if version > CACHE_VERSION:
            raise TemplateMigrationError(
                f"Cache version {version} is newer than supported version {CACHE_VERSION}")
        if version == CACHE_VERSION:
            return record, False

        backfilled = 0
        for entry in record["shifts"]:
            if isinstance(entry, dict) and not entry.get("id"):
                entry["id"] = str(uuid.uuid4())
                backfilled += 1
        record["cacheVersion"] = CACHE_VERSION
        logger.info(f"Migrated template cache from version {version} to {CACHE_VERSION} "
                    f"({backfilled} ids assigned)")
        return record, True


class MemoryTemplateStore(TemplateStore):
    """Process-local store, used when nothing should touch the disk"""

    def __init__(self, record: Optional[Dict[str, Any]] = None):
        self._record = copy.deepcopy(record)

    def load(self) -> Optional[Dict[str, Any]]:
        if self._record is None:
            return None
        record, migrated = self._validate_and_migrate_record(copy.deepcopy(self._record))
        if migrated:
            self._record = copy.deepcopy(record)
        return record

    def save(self, record: Dict[str, Any]):
        self._record = copy.deepcopy(record)

    def clear(self):
        self._record = None


class JsonTemplateStore(TemplateStore):
    """Template record kept in a JSON file"""

    def __init__(self, path: Union[str, Path] = "data/template_cache.json"):
        self.path = Path(path)

    @property
    def backup_path(self) -> Path:
        return self.path.with_suffix(".bak")

    def _read_json(self, path: Path) -> Any:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def load(self) -> Optional[Dict[str, Any]]:
        """Load the persisted record, recovering from the backup when needed"""
        backup_file = self.backup_path
        if self.path.exists():
            try:
                data = self._read_json(self.path)
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Error loading template cache {self.path}: {e}")
                if not backup_file.exists():
                    raise TemplateStoreError(f"Template cache corrupted and no backup available: {e}")
                data = self._recover_from_backup()
        elif backup_file.exists():
            logger.info(f"Template cache missing, attempting recovery from backup {backup_file}")
            data = self._recover_from_backup()
        else:
            logger.info(f"No template cache found at {self.path}")
            return None

        record, migrated = self._validate_and_migrate_record(data)
        if migrated:
            try:
                self.save(record)
            except TemplateStoreError as e:
                logger.error(f"Failed to write migrated template cache: {e}")
        return record

    def _recover_from_backup(self) -> Any:
        backup_file = self.backup_path
        try:
            data = self._read_json(backup_file)
        except (json.JSONDecodeError, OSError) as backup_e:
            logger.error(f"Template cache backup also corrupted: {backup_e}")
            raise TemplateStoreError(f"Template cache and backup are unreadable: {backup_e}")
        backup_file.replace(self.path)
        logger.info("Successfully recovered template cache from backup")
        return data

    def save(self, record: Dict[str, Any]):
        """Save the record atomically, keeping the previous file as backup"""
        temp_file = self.path.with_suffix(".tmp")
        backup_file = self.backup_path

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists():
                self.path.replace(backup_file)

            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, ensure_ascii=False)

            temp_file.replace(self.path)
            logger.debug(f"Template cache written to {self.path}")

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving template cache {self.path}: {e}", exc_info=True)
            if backup_file.exists() and not self.path.exists():
                try:
                    backup_file.replace(self.path)
                except OSError as restore_e:
                    logger.error(f"Failed to restore template cache from backup: {restore_e}")
            raise TemplateStoreError(f"Failed to save template cache: {e}")

        finally:
            if temp_file.exists():
                try:
                    temp_file.unlink()
                except OSError:
                    logger.warning(f"Could not remove temporary file {temp_file}")

    def clear(self):
        for path in (self.path, self.backup_path):
            if path.exists():
                path.unlink()
