#!/usr/bin/env python3
"""
QuickLink Cache Cleanup Tool

Standalone CLI for inspecting and pruning the link cache. Nothing is ever
evicted automatically; this is the way to drop stale programs or variants.

Usage:
    python cleanup.py --stats                                # Show cached programs and variants
    python cleanup.py --clear --all                          # Delete every cached link command
    python cleanup.py --clear --program foo                  # Delete all variants of foo
    python cleanup.py --clear --program foo --tags A,B       # Delete only the A,B variant of foo
    python cleanup.py --clear --all --dry-run                # Preview what would be deleted
    python cleanup.py --db /tmp/link.db --stats              # Use another cache database
"""
import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

from quicklink import (EXIT_CONFIG, CacheEntrySummary, Fingerprint, LinkCache, QuickLinkError, QuickLinkLogger,
                       __version__, parse_tags, report_error)


DEFAULT_DB = "link.db"


def format_tags(tags: List[str]) -> str:
    """Format a tag list for display."""
    return ",".join(tags) if tags else "(no tags)"


def find_entries(cache: LinkCache, program: Optional[str], tags: Optional[str]) -> List[CacheEntrySummary]:
    """Select cached entries by program name and, optionally, exact tag set.
    Args:    cache: Link cache
             program: Program name filter (None matches all)
             tags: Comma-separated tags (None matches any variant of program)
    Returns: Matching entries"""
    entries = cache.entries()
    if program is not None:
        entries = [e for e in entries if e.fingerprint.program == program]
    if tags is not None:
        wanted = Fingerprint(program or "", parse_tags(tags))
        entries = [e for e in entries if e.fingerprint.tags == wanted.tags]
    return entries


def cmd_stats(cache: LinkCache) -> int:
    """Show per-program cache statistics."""
    entries = cache.entries()
    if not entries:
        print(f"No cached link commands in {cache.db_path}")
        return 0

    by_program: Dict[str, List[CacheEntrySummary]] = {}
    for entry in entries:
        by_program.setdefault(entry.fingerprint.program, []).append(entry)

    print(f"QuickLink cache: {cache.db_path}")
    print()

    for program, program_entries in sorted(by_program.items()):
        print(program)
        for entry in program_entries:
            print(f"  Tags: {format_tags(entry.fingerprint.tags)}")
            print(f"    Arguments: {entry.arguments}")
            print(f"    Package files: {entry.artifacts}")
            print(f"    Other manifest lines: {entry.manifest_lines}")
        print()

    print("-" * 60)
    print(f"Total: {len(entries)} link commands for {len(by_program)} programs")

    return 0


def cmd_clear(cache: LinkCache, program: Optional[str], tags: Optional[str], dry_run: bool) -> int:
    """Clear matching cache entries."""
    entries = find_entries(cache, program, tags)

    if not entries:
        print("No matching entries found.")
        return 0

    if dry_run:
        print(f"Would delete {len(entries)} link commands")
        print()
        for entry in entries:
            print(f"{entry.fingerprint.program}: {format_tags(entry.fingerprint.tags)}")
    else:
        deleted = cache.remove([entry.fingerprint for entry in entries])
        print(f"Deleted {deleted} link commands")

    return 0


def main(args: List[str] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="QuickLink Cache Cleanup Tool", epilog=__doc__,
                                     formatter_class=argparse.RawDescriptionHelpFormatter)

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--stats",   action="store_true", help="Show cached programs and build tag variants")
    parser.add_argument("--clear",   action="store_true", help="Delete matching cache entries")
    parser.add_argument("--all",     action="store_true", help="Delete all cache entries (requires --clear)")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be deleted without deleting")

    parser.add_argument("--program", type=str, metavar="NAME", help="Filter: entries for this program (the -o value)")
    parser.add_argument("--tags",    type=str, metavar="TAGS", help="Filter: only the variant with exactly these tags")
    parser.add_argument("--db",      type=str, default=DEFAULT_DB, metavar="PATH",
                        help=f"Path to the link cache database (default: {DEFAULT_DB})")
    parser.add_argument("--log-level", type=int, default=0, metavar="N",
                        help="Log level (0 = warnings only, 1 = info, 2 = debug)")

    parsed = parser.parse_args(args)

    # Validate arguments
    if parsed.stats and parsed.clear:
        print("Error: Cannot use --stats and --clear together.")
        return EXIT_CONFIG

    if parsed.dry_run and not parsed.clear:
        print("Error: --dry-run requires --clear.")
        return EXIT_CONFIG

    if parsed.all and not parsed.clear:
        print("Error: --all requires --clear.")
        return EXIT_CONFIG

    if parsed.all and (parsed.program or parsed.tags is not None):
        print("Error: --all cannot be combined with --program or --tags.")
        return EXIT_CONFIG

    if parsed.tags is not None and not parsed.program:
        print("Error: --tags requires --program.")
        return EXIT_CONFIG

    if parsed.clear and not (parsed.all or parsed.program):
        print("Error: --clear requires a filter (--program, --tags) or --all.")
        return EXIT_CONFIG

    if not parsed.stats and not parsed.clear:
        parser.print_help()
        return EXIT_CONFIG

    cache = LinkCache(Path(parsed.db), QuickLinkLogger(parsed.log_level))

    try:
        if parsed.stats:
            return cmd_stats(cache)
        return cmd_clear(cache, program=parsed.program, tags=parsed.tags, dry_run=parsed.dry_run)
    except QuickLinkError as e:
        return report_error(e)


if __name__ == "__main__":
    sys.exit(main())
