"""
Entry point for the WordPress WXR import tool.
"""

import argparse
import logging
import sys

from wp_import.import_tool import WordPressImportTool, configure_logging
from wp_import.utils.errors import WPImportError

CONFIG_FILE = "config/migration_config.json"

logger = logging.getLogger("wp_import")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Import a WordPress WXR export into the CMS.")
    parser.add_argument("export", help="Path of the WordPress export (.xml)")
    parser.add_argument("--config", default=CONFIG_FILE, help=f"JSON configuration file (default: {CONFIG_FILE})")
    parser.add_argument("--dry-run", action="store_true", help="Parse and transform only; write nothing")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug messages")
    return parser


def main(argv=None) -> int:
    """
    Main function to run the WordPress import tool.
    """
    args = build_arg_parser().parse_args(argv)
    tool = WordPressImportTool(config_file=args.config)
    configure_logging(tool.config["reports"]["dir"], logging.DEBUG if args.verbose else logging.INFO)
    logger.info("Starting WordPress import of %s", args.export)

    try:
        summary = tool.run(args.export, dry_run=args.dry_run)
    except WPImportError as e:
        logger.error("Import failed: %s", e)
        return 1

    if summary is None:
        logger.info(
            "Dry-run: %d entries, %d media and %d categories would be imported.",
            len(tool.entries), len(tool.medias), len(tool.categories),
        )
        return 0

    logger.info(
        "Import process finished: %d/%d entries, %d/%d media, %d categories in %.2fs (memory peak +%d bytes)",
        summary.entry_success,
        summary.entry_success + summary.entry_error,
        summary.media_success,
        summary.media_success + summary.media_error,
        summary.category_success,
        summary.total_time,
        summary.memory_peak,
    )
    return 0 if summary.entry_error == 0 and summary.media_error == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
