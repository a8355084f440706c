#!/usr/bin/env python3

import os
import glob
import shutil
import fnmatch
import logging
from typing import Dict, List, Optional, Any, Tuple
from datetime import datetime
from dataclasses import dataclass

from ..config.manager import SelectorConfig
from ..errors import CleanupError

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

# Drop-in files removed before writing the new sources.list
DROPIN_PATTERNS = ("*.list", "*.save", "*.conf", "*.sources")

# Files that may live in /usr/share/apt and still feed source resolution
SHARED_SOURCE_PATTERNS = ("*.list", "sources*", "*.sources")

def copy_entry(source: str, target: str) -> None:
    """Copy a file, symlink or directory without following symlinks"""
    if os.path.isdir(source) and not os.path.islink(source):
        shutil.copytree(source, target, symlinks=True)
    else:
        shutil.copy2(source, target, follow_symlinks=False)

def replace_entry(source: str, target: str) -> None:
    """Put source at target, removing whatever target currently is"""
    if not os.path.lexists(source):
        raise FileNotFoundError(f"Backup entry missing: {source}")

    if os.path.isdir(target) and not os.path.islink(target):
        shutil.rmtree(target)
    elif os.path.lexists(target):
        os.remove(target)

    copy_entry(source, target)

@dataclass(frozen=True)
class BackupRecord:
    timestamp: str
    primary_backup: str
    dropins_backup_dir: str
    primary_existed: bool
    dropin_files: Tuple[str, ...] = ()

class StorageManager:
    def __init__(self, config: SelectorConfig):
        self.config = config
        self._backup: Optional[BackupRecord] = None

    @property
    def backup(self) -> Optional[BackupRecord]:
        return self._backup

    def create_backup(self, now: Optional[datetime] = None) -> BackupRecord:
        """Back up sources.list and sources.list.d once per run"""
        if self._backup is not None:
            return self._backup

        timestamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
        sources_list = self.config.sources_list
        sources_dir = self.config.sources_dir

        primary_backup = os.path.join(
            self.config.backup_dir, f"{os.path.basename(sources_list)}.backup.{timestamp}"
        )
        dropins_backup_dir = os.path.join(
            self.config.backup_dir, f"{os.path.basename(sources_dir)}.backup.{timestamp}"
        )

        os.makedirs(dropins_backup_dir, exist_ok=True)

        primary_existed = os.path.lexists(sources_list)
        if primary_existed:
            copy_entry(sources_list, primary_backup)
            logger.info(f"Backup created: {primary_backup}")
        else:
            logger.warning(f"No existing {sources_list} found - this is normal in some Docker images")
            # Empty placeholder marks "no prior sources.list" for rollback
            open(primary_backup, 'w').close()

        dropin_files = []
        if os.path.isdir(sources_dir):
            # Symlinks (dangling ones included) and directories are kept as they are
            for name in sorted(os.listdir(sources_dir)):
                copy_entry(os.path.join(sources_dir, name), os.path.join(dropins_backup_dir, name))
                dropin_files.append(name)

            if dropin_files:
                logger.info(f"Backed up {len(dropin_files)} files from {sources_dir} to {dropins_backup_dir}")
            else:
                logger.info(f"No files found in {sources_dir}")
        else:
            logger.info(f"No {sources_dir} directory found")

        if not primary_existed and not dropin_files:
            logger.warning("No APT sources found - this might be a minimal Docker image")

        self._backup = BackupRecord(
            timestamp=timestamp,
            primary_backup=primary_backup,
            dropins_backup_dir=dropins_backup_dir,
            primary_existed=primary_existed,
            dropin_files=tuple(dropin_files),
        )
        return self._backup

    def clean_sources(self) -> Dict[str, Any]:
        """Remove every source definition so the new sources.list is the only one

        Index cache and auxiliary files are removed best-effort. Drop-in files
        and sources.list itself must go, otherwise CleanupError is raised.
        """
        logger.info("Thoroughly cleaning APT sources...")
        result = {
            'deleted_files': 0,
            'deleted_directories': 0,
            'errors': []
        }

        self._empty_directory(self.config.lists_dir, result)

        sources_dir = self.config.sources_dir
        if os.path.isdir(sources_dir):
            logger.info(f"Removing all {os.path.basename(sources_dir)} files...")
            for pattern in DROPIN_PATTERNS:
                for path in sorted(glob.glob(os.path.join(sources_dir, pattern))):
                    self._remove(path, result, required=True)

        if os.path.lexists(self.config.sources_list):
            logger.info(f"Clearing existing {os.path.basename(self.config.sources_list)}...")
            self._remove(self.config.sources_list, result, required=True)

        for path in self._stale_paths():
            logger.info(f"Removing: {path}")
            self._remove(path, result, required=False)

        logger.info("APT sources cleaned")
        return result

    def _stale_paths(self) -> List[str]:
        lists_dir = self.config.lists_dir
        candidates = [
            f"{self.config.sources_list}.save",
            f"{self.config.sources_dir}.save",
            os.path.join(self.config.apt_conf_dir, "99mirrors"),
            os.path.join(self.config.apt_conf_dir, "99default-release"),
        ]
        candidates.extend(glob.glob(os.path.join(lists_dir, "deb.debian.org*")))
        candidates.extend(glob.glob(os.path.join(lists_dir, "archive.ubuntu.com*")))

        share_apt = self.config.share_apt_dir
        if os.path.isdir(share_apt):
            for dirpath, dirnames, filenames in os.walk(share_apt):
                for filename in sorted(filenames):
                    if any(fnmatch.fnmatch(filename, p) for p in SHARED_SOURCE_PATTERNS):
                        candidates.append(os.path.join(dirpath, filename))

        return [path for path in candidates if os.path.lexists(path)]

    def _empty_directory(self, directory: str, result: Dict[str, Any]) -> None:
        if not os.path.isdir(directory):
            return

        for name in os.listdir(directory):
            self._remove(os.path.join(directory, name), result, required=False)

    def _remove(self, path: str, result: Dict[str, Any], required: bool) -> None:
        try:
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
                result['deleted_directories'] += 1
            else:
                os.remove(path)
                result['deleted_files'] += 1
            logger.debug(f"Deleted: {path}")

        except FileNotFoundError:
            pass

        except OSError as e:
            if required:
                raise CleanupError(f"Failed to remove {path}: {e}")
            logger.warning(f"Failed to remove {path}: {e}")
            result['errors'].append(f"{path}: {e}")

    def restore_backup(self, record: Optional[BackupRecord] = None) -> Dict[str, Any]:
        """Put sources.list and the drop-in files back as they were before the run"""
        record = record or self._backup
        restore_result = {
            'primary_restored': False,
            'dropins_restored': 0,
            'errors': []
        }

        if record is None:
            restore_result['errors'].append("No backup record for this run")
            logger.error("No backup record available to restore from")
            return restore_result

        sources_list = self.config.sources_list
        try:
            if record.primary_existed:
                replace_entry(record.primary_backup, sources_list)
                logger.warning(f"Restored main sources.list from {record.primary_backup}")
            elif os.path.lexists(sources_list):
                os.remove(sources_list)
                logger.warning(f"Removed {sources_list}; none existed before this run")
            restore_result['primary_restored'] = True
        except OSError as e:
            logger.error(f"Failed to restore {sources_list}: {e}")
            restore_result['errors'].append(f"{sources_list}: {e}")

        for name in record.dropin_files:
            source = os.path.join(record.dropins_backup_dir, name)
            target = os.path.join(self.config.sources_dir, name)
            try:
                os.makedirs(self.config.sources_dir, exist_ok=True)
                replace_entry(source, target)
                restore_result['dropins_restored'] += 1
            except OSError as e:
                logger.error(f"Failed to restore {target}: {e}")
                restore_result['errors'].append(f"{target}: {e}")

        if restore_result['dropins_restored']:
            logger.warning(
                f"Restored {restore_result['dropins_restored']} files to "
                f"{self.config.sources_dir} from {record.dropins_backup_dir}"
            )

        return restore_result
