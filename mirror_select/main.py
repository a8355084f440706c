#!/usr/bin/env python3

import os
import sys
import argparse
import logging
from typing import List, Optional

from rich.console import Console
from rich.logging import RichHandler

from .catalog.mirrors import MirrorCatalog
from .config.manager import LOG_LEVELS, ConfigManager, SelectorConfig
from .distro.detector import DistributionDetector, DistributionIdentity
from .errors import ConfigError, MirrorSelectError, PrivilegeError
from .inspection.scanner import SourceStateInspector
from .packages.apt import AptPackageManager
from .region.resolver import GeolocationProbe, RegionResolver
from .storage.manager import StorageManager
from .transaction.manager import TransactionManager
from .verification.checker import SourcesVerifier

logger = logging.getLogger(__name__)

def setup_logging(level: str = "INFO"):
    """Configure logging for the application"""
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Determine log file path
    if os.geteuid() == 0:
        log_file = "/var/log/mirror-select.log"
    else:
        log_file = os.path.expanduser("~/.local/log/mirror-select.log")
        os.makedirs(os.path.dirname(log_file), exist_ok=True)

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        show_path=False,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=log_format,
        handlers=[
            console_handler,
            logging.FileHandler(log_file, delay=True)
        ]
    )
    logging.getLogger("urllib3").setLevel(logging.WARNING)

def add_run_options(parser: argparse.ArgumentParser, default=None) -> None:
    """Options that tune a run; shared by the top-level parser and the subcommands"""
    parser.add_argument(
        "--country",
        default=default,
        help="Two-letter region code, skips geolocation"
    )

    parser.add_argument(
        "--no-speed-test",
        action="store_true",
        default=False if default is None else default,
        help="Skip the mirror download probe after updating"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=False if default is None else default,
        help="Dump APT source state before and after the change"
    )

def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure argument parser"""
    parser = argparse.ArgumentParser(
        description="APT Mirror Selector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  sudo %(prog)s                               # Detect region and rewrite sources.list
  sudo %(prog)s --country CN                  # Force the Chinese mirror set
  %(prog)s render --distribution ubuntu --codename jammy --country DE
  %(prog)s scan                               # Show every location feeding APT sources
  %(prog)s init-config                        # Write a configuration template

Environment:
  FORCE_COUNTRY       Region override, same as --country
  DISABLE_SPEED_TEST  Set to 1 to skip the post-update download probe
  DEBUG               Set to 1 to dump the APT source state before and after
        """
    )

    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
        default=None
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        default=None,
        help="Set logging level"
    )

    add_run_options(parser)

    # Subcommands accept the same options; SUPPRESS keeps values given before the subcommand
    run_options = argparse.ArgumentParser(add_help=False)
    add_run_options(run_options, default=argparse.SUPPRESS)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("apply", parents=[run_options],
                          help="Select mirrors and rewrite sources.list (default)")

    render_parser = subparsers.add_parser("render", parents=[run_options],
                                          help="Print the selected sources without writing")
    render_parser.add_argument(
        "--distribution", "-d",
        help="Distribution family (debian or ubuntu), detected when omitted"
    )
    render_parser.add_argument(
        "--codename",
        help="Release codename, required with --distribution"
    )

    subparsers.add_parser("scan", parents=[run_options], help="Show the current APT source state")
    subparsers.add_parser("init-config", help="Write a configuration template")

    return parser

def apply_cli_overrides(config: SelectorConfig, args) -> SelectorConfig:
    if args.country:
        config.force_country = args.country
    if args.no_speed_test:
        config.disable_speed_test = True
    if args.debug:
        config.debug = True
    if args.log_level:
        config.log_level = args.log_level
    return config

def ensure_root() -> None:
    if os.geteuid() != 0:
        raise PrivilegeError("This command must be run as root (use sudo)")

def create_resolver(config: SelectorConfig) -> RegionResolver:
    probe = GeolocationProbe(timeout=config.geolocation_timeout,
                             retries=config.geolocation_retries)
    return RegionResolver(probe, config.geolocation_services)

def detect_distribution(config: SelectorConfig, catalog: MirrorCatalog) -> DistributionIdentity:
    detector = DistributionDetector(config.os_release_path, config.debian_version_path,
                                    supported_families=catalog.families)
    return detector.detect()

def cmd_apply(config: SelectorConfig, catalog: Optional[MirrorCatalog] = None) -> int:
    """Handle apply command"""
    logger.info("Starting mirror auto-selection...")
    ensure_root()

    catalog = catalog or MirrorCatalog()
    distro = detect_distribution(config, catalog)

    package_manager = AptPackageManager(timeout=config.apt_timeout, retries=config.apt_retries)
    inspector = SourceStateInspector(config)
    prior_state = inspector.scan()

    if config.debug:
        logger.info("=== DEBUG: Initial APT sources state ===")
        inspector.dump(package_manager)

    country = create_resolver(config).resolve(config.force_country)
    bucket = catalog.bucket_for(country)
    logger.info(f"Selecting mirrors for {country}: using {bucket.description}")
    source_set = catalog.render(country, distro)

    transaction = TransactionManager(
        config,
        StorageManager(config),
        package_manager,
        SourcesVerifier(config, package_manager),
        inspector,
    )
    transaction.execute(source_set, prior_state)

    logger.info("You can now use 'apt-get update' and 'apt-get install' with optimized mirrors")
    return 0

def cmd_render(args, config: SelectorConfig, catalog: Optional[MirrorCatalog] = None) -> int:
    """Handle render command"""
    catalog = catalog or MirrorCatalog()

    if args.distribution:
        if not args.codename:
            print("Error: --codename is required with --distribution")
            return 1
        distro = DistributionIdentity(family=args.distribution.lower(), version="",
                                      codename=args.codename)
    else:
        distro = detect_distribution(config, catalog)

    country = create_resolver(config).resolve(config.force_country)
    for line in catalog.render(country, distro).lines():
        print(line)

    return 0

def cmd_scan(config: SelectorConfig) -> int:
    """Handle scan command"""
    state = SourceStateInspector(config).scan()

    print("=== APT Source State ===")
    print(f"Primary source file: {config.sources_list} "
          f"({'present' if state.primary_exists else 'absent'})")

    print(f"\nLocations: {len(state.locations)}")
    for location in state.locations:
        print(f"  {location}")

    print(f"\nDrop-in files: {len(state.dropin_files)}")
    for path in state.dropin_files:
        print(f"  {path}")

    print(f"\nReferenced hosts: {', '.join(sorted(state.hosts)) or 'none'}")

    if state.mirror_references:
        print("\nFiles referencing default mirrors:")
        for path in state.mirror_references:
            print(f"  {path}")

    if state.proxy_configs:
        print("\nAPT proxy/authentication settings:")
        for path in state.proxy_configs:
            print(f"  {path}")

    if state.env_sources:
        print("\nAPT_SOURCES is set in the environment")

    return 0

def cmd_init_config(config_manager: ConfigManager) -> int:
    """Handle init-config command"""
    config_manager.save_config()
    print(f"Configuration written to {config_manager.config_path}")
    return 0

def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    config_manager = ConfigManager(args.config)
    try:
        config = config_manager.load_config()
    except ConfigError as e:
        setup_logging(args.log_level or "INFO")
        logger.error(str(e))
        return 1

    apply_cli_overrides(config, args)
    setup_logging(config.log_level)

    try:
        if args.command == "render":
            return cmd_render(args, config)

        elif args.command == "scan":
            return cmd_scan(config)

        elif args.command == "init-config":
            return cmd_init_config(config_manager)

        else:
            return cmd_apply(config)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130

    except MirrorSelectError as e:
        logger.error(str(e))
        return 1

    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if config.log_level.upper() == "DEBUG":
            import traceback
            traceback.print_exc()
        return 1

if __name__ == "__main__":
    sys.exit(main())
