#!/usr/bin/env python3

import os
import re
import time
import logging
import tempfile
from typing import Iterable, Optional, Set

from ..config.manager import SelectorConfig
from ..errors import VerificationError
from ..inspection.scanner import extract_hosts, read_text
from ..packages.apt import AptPackageManager

logger = logging.getLogger(__name__)

URL_HOST_PATTERN = re.compile(r"https?://([^/\s:'\"]+)")

class SourcesVerifier:
    def __init__(self, config: SelectorConfig, package_manager: AptPackageManager):
        self.config = config
        self.package_manager = package_manager

    def verify_written(self, stale_hosts: Iterable[str]) -> None:
        """Check that sources.list was written and no longer names a stale host"""
        sources_list = self.config.sources_list

        if not os.path.isfile(sources_list) or os.path.getsize(sources_list) == 0:
            raise VerificationError(f"Failed to write {sources_list}")

        content = read_text(sources_list)
        if content is None:
            raise VerificationError(f"Cannot read back {sources_list}")

        lingering = extract_hosts(content) & set(stale_hosts)
        if lingering:
            raise VerificationError(
                f"Old mirror references found in {sources_list}: {', '.join(sorted(lingering))}"
            )

        logger.info(f"{os.path.basename(sources_list)} written successfully")
        logger.info("Contents preview:")
        for line in content.splitlines()[:3]:
            logger.info(f"  {line}")

    def verify_active_mirrors(self, stale_hosts: Iterable[str]) -> bool:
        """Check that an index refresh only contacts the configured mirrors"""
        logger.info("Verifying mirror configuration...")
        output = self.package_manager.update_debug_output()

        contacted: Set[str] = set(URL_HOST_PATTERN.findall(output))
        still_used = contacted & set(stale_hosts)
        if still_used:
            logger.warning(
                f"Still detecting old mirrors ({', '.join(sorted(still_used))}) "
                "- this might be from cached data"
            )
            return False

        logger.info("Only configured mirrors are being used")
        return True

    def speed_test(self) -> Optional[float]:
        """Time a single package download; returns seconds or None on failure"""
        if self.config.disable_speed_test:
            logger.info("Speed testing disabled by DISABLE_SPEED_TEST=1")
            return None

        package = self.config.speed_test_package
        logger.info("Testing mirror speed...")

        with tempfile.TemporaryDirectory(prefix="mirror-select-") as download_dir:
            start = time.monotonic()
            ok = self.package_manager.download(package, download_dir,
                                               timeout=self.config.speed_test_timeout)
            duration = time.monotonic() - start

        if not ok:
            logger.warning("Mirror speed test failed (this is normal for some mirrors)")
            return None

        logger.info(f"Mirror test completed in {duration:.1f}s")
        return duration
