#!/usr/bin/env python3

"""
Guarded rewrite of the APT sources.

The transaction walks IDLE -> BACKED_UP -> CLEANED -> WRITTEN -> VERIFIED ->
REFRESHED. A failed index refresh restores the backup taken in BACKED_UP and
ends in ROLLED_BACK. Cleanup and verification failures end in FAILED without
a rollback: the backup paths are logged for manual recovery instead.
"""

import os
import logging
from enum import Enum
from typing import List, Optional, Set
from dataclasses import dataclass, field

from ..catalog.mirrors import SourceSet
from ..config.manager import SelectorConfig
from ..errors import (
    CleanupError, RefreshError, TransactionStateError, VerificationError
)
from ..inspection.scanner import SourceState, SourceStateInspector
from ..packages.apt import AptPackageManager
from ..storage.manager import BackupRecord, StorageManager
from ..verification.checker import SourcesVerifier

logger = logging.getLogger(__name__)

class TransactionState(Enum):
    IDLE = "idle"
    BACKED_UP = "backed_up"
    CLEANED = "cleaned"
    WRITTEN = "written"
    VERIFIED = "verified"
    REFRESHED = "refreshed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

@dataclass
class TransactionResult:
    state: TransactionState
    backup: Optional[BackupRecord]
    source_set: SourceSet
    speed_test_seconds: Optional[float] = None
    history: List[TransactionState] = field(default_factory=list)

class TransactionManager:
    def __init__(self, config: SelectorConfig, storage: StorageManager,
                 package_manager: AptPackageManager, verifier: SourcesVerifier,
                 inspector: Optional[SourceStateInspector] = None):
        self.config = config
        self.storage = storage
        self.package_manager = package_manager
        self.verifier = verifier
        self.inspector = inspector
        self.state = TransactionState.IDLE
        self.history: List[TransactionState] = [TransactionState.IDLE]
        self.stale_hosts: Set[str] = set()

    def _expect(self, *states: TransactionState) -> None:
        if self.state not in states:
            expected = " or ".join(s.name for s in states)
            raise TransactionStateError(
                f"Cannot continue from {self.state.name}; expected {expected}"
            )

    def _transition(self, state: TransactionState) -> None:
        logger.debug(f"Transaction {self.state.name} -> {state.name}")
        self.state = state
        self.history.append(state)

    def _fail(self, error: Exception) -> None:
        logger.error(f"Transaction failed in {self.state.name}: {error}")
        self._transition(TransactionState.FAILED)
        backup = self.storage.backup
        if backup is not None:
            logger.error(
                f"Previous sources are preserved in {backup.primary_backup} "
                f"and {backup.dropins_backup_dir}"
            )

    def backup(self) -> BackupRecord:
        if self.state is not TransactionState.IDLE:
            self._expect(TransactionState.BACKED_UP, TransactionState.CLEANED,
                         TransactionState.WRITTEN, TransactionState.VERIFIED,
                         TransactionState.REFRESHED, TransactionState.ROLLED_BACK)
            return self.storage.backup

        record = self.storage.create_backup()
        self._transition(TransactionState.BACKED_UP)
        return record

    def clean(self) -> None:
        self._expect(TransactionState.BACKED_UP)

        if not self.package_manager.clean():
            logger.warning("apt-get clean failed, continuing")

        try:
            result = self.storage.clean_sources()
        except CleanupError as e:
            self._fail(e)
            raise

        if result['errors']:
            logger.warning(f"Skipped {len(result['errors'])} optional paths that could not be removed")

        self._transition(TransactionState.CLEANED)

    def write(self, source_set: SourceSet) -> None:
        self._expect(TransactionState.CLEANED)

        sources_list = self.config.sources_list
        logger.info(f"Writing new {os.path.basename(sources_list)}...")
        try:
            os.makedirs(os.path.dirname(sources_list), exist_ok=True)
            with open(sources_list, 'w') as f:
                f.write(source_set.render())
        except OSError as e:
            error = VerificationError(f"Failed to write {sources_list}: {e}")
            self._fail(error)
            raise error

        self._transition(TransactionState.WRITTEN)

    def verify(self, source_set: SourceSet, prior_hosts: Set[str]) -> None:
        self._expect(TransactionState.WRITTEN)

        # Hosts the new set deliberately keeps are not stale
        self.stale_hosts = set(prior_hosts) - source_set.hostnames()
        try:
            self.verifier.verify_written(self.stale_hosts)
        except VerificationError as e:
            self._fail(e)
            raise

        self._transition(TransactionState.VERIFIED)

        if self.config.debug and self.inspector is not None:
            logger.info("=== DEBUG: APT sources after configuration ===")
            self.inspector.dump(self.package_manager)

    def refresh(self) -> None:
        self._expect(TransactionState.VERIFIED)
        logger.info("Updating package lists...")

        if self.package_manager.update():
            logger.info("Package lists updated successfully")
            self._transition(TransactionState.REFRESHED)
            return

        logger.error("Mirror configuration failed. Restoring backup...")
        self.rollback()
        raise RefreshError(
            "Failed to update package lists; previous sources were restored. "
            "Please check your internet connection and try again."
        )

    def rollback(self) -> dict:
        self._expect(TransactionState.WRITTEN, TransactionState.VERIFIED,
                     TransactionState.REFRESHED)

        result = self.storage.restore_backup()
        if result['errors']:
            logger.error(f"Rollback finished with {len(result['errors'])} errors")
        else:
            logger.warning("Backup restored")

        self._transition(TransactionState.ROLLED_BACK)
        return result

    def post_checks(self) -> Optional[float]:
        """Optional checks after a successful refresh; never change the outcome"""
        self._expect(TransactionState.REFRESHED)

        if self.config.debug:
            self.verifier.verify_active_mirrors(self.stale_hosts)

        try:
            return self.verifier.speed_test()
        except OSError as e:
            logger.warning(f"Mirror speed test could not run: {e}")
            return None

    def execute(self, source_set: SourceSet, prior_state: SourceState) -> TransactionResult:
        record = self.backup()
        self.clean()
        self.write(source_set)
        self.verify(source_set, prior_state.hosts)
        self.refresh()

        logger.info("Mirror configuration completed successfully!")
        duration = self.post_checks()

        return TransactionResult(
            state=self.state,
            backup=record,
            source_set=source_set,
            speed_test_seconds=duration,
            history=list(self.history),
        )
