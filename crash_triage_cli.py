#!/usr/bin/env python3
"""
Crash Triage - Main Entry Point

Dry-run launcher for the crash triage modules.
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import List, Optional


def _print_crash(path: str, crash) -> None:
    if crash is None:
        print(f"[-] {path}: no crash found")
        return
    print(f"[+] {path}: {crash.category.name}")
    print(f"    Signature: {crash.signature}")
    print(f"    Modded: {crash.modded_confidence.name}")
    if crash.version:
        print(f"    Version: {crash.version}")
    if crash.deobfuscated:
        print("    Deobfuscated trace available")


def _print_result(name: str, result) -> None:
    print(f"[*] {name}: {result.status.name}", end="")
    if result.decision is not None:
        print(f" ({result.decision})", end="")
    print()
    for error in result.errors:
        print(f"[-]   {type(error).__name__}: {error}")


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description='Crash Triage - find, classify and deduplicate crash reports in bug reports',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Classify crash reports
  %(prog)s classify crash.txt hs_err_pid1234.log

  # Dry-run all crash modules against a report described in JSON
  %(prog)s triage report.json --config crash_triage.json

  # Only consider crashes attached after the last run
  %(prog)s triage report.json --last-run 2024-05-01T00:00:00+00:00

  # Deobfuscate an attachment with local mapping files
  %(prog)s deobfuscate report.json crash.txt --mappings mappings/ --game-version 1.20.1
        """
    )

    parser.add_argument(
        'command',
        choices=['classify', 'triage', 'deobfuscate'],
        help='Command to execute'
    )

    parser.add_argument(
        'files',
        nargs='+',
        help='Crash files (classify), a report JSON file (triage), '
             'or a report JSON file and an attachment name (deobfuscate)'
    )

    parser.add_argument(
        '--config',
        '-c',
        help='Configuration JSON (default: $CRASH_TRIAGE_CONFIG or crash_triage.json)'
    )

    parser.add_argument(
        '--last-run',
        help='ISO timestamp of the previous run; older crashes are ignored'
    )

    parser.add_argument(
        '--mappings',
        help='Directory with <version>-client.txt / <version>-server.txt mapping files '
             '(default: $CRASH_TRIAGE_MAPPINGS_DIR or the configuration)'
    )

    parser.add_argument(
        '--game-version',
        help='Game version for deobfuscate (default: detected)'
    )

    parser.add_argument(
        '--side',
        choices=['client', 'server'],
        help='Crash report type for deobfuscate (default: detected)'
    )

    parser.add_argument(
        '--verbose',
        '-v',
        action='store_true',
        help='Show debug logging'
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s'
    )

    from crash_triage.classifier import CrashClassifierAdapter
    from crash_triage.config import ConfigError, load_config_from_env
    from crash_triage.core import CrashTriage
    from crash_triage.crash_parser import CrashReportParser
    from crash_triage.deobfuscation import DeobfuscationRequestError
    from crash_triage.mappings import MappingDeobfuscator
    from crash_triage.models import CrashSource, SourceOrigin
    from crash_triage.report_file import load_report, parse_timestamp

    if args.command == 'classify':
        from crash_triage.bounded_reader import read_text
        from crash_triage.collector import DEFAULT_MAX_ATTACHMENT_BYTES
        from datetime import datetime, timezone

        deobfuscator = MappingDeobfuscator(args.mappings) if args.mappings else None
        adapter = CrashClassifierAdapter(CrashReportParser(), deobfuscator)
        for path in args.files:
            try:
                text = read_text(open(path, 'rb'), DEFAULT_MAX_ATTACHMENT_BYTES)
            except OSError as e:
                print(f"[-] {path}: {e}")
                continue
            source = CrashSource(SourceOrigin.attachment(Path(path).name), text,
                                 datetime.now(timezone.utc))
            _print_crash(path, adapter.classify(source))
        return 0

    try:
        config = load_config_from_env(args.config)
    except ConfigError as e:
        print(f"[-] {e}")
        return 2

    try:
        report = load_report(args.files[0])
        last_run = parse_timestamp(args.last_run) if args.last_run else None
    except (OSError, ValueError, KeyError) as e:
        print(f"[-] Cannot load report {args.files[0]}: {e}")
        return 2

    if args.mappings:
        config.mappings_dir = Path(args.mappings)
    triage = CrashTriage(config)

    if args.command == 'deobfuscate':
        if len(args.files) != 2:
            parser.error("deobfuscate requires a report file and an attachment name")
        is_client = None if args.side is None else args.side == 'client'
        try:
            job = triage.deobfuscate_attachment(report, args.files[1], args.game_version, is_client)
        except DeobfuscationRequestError as e:
            print(f"[-] {e}")
            return 1
        print(f"[+] Deobfuscated {job.source_name}")
        return 0

    print(f"[*] Analyzing {report.key}")
    results = [
        ("crash", triage.run(report, last_run)),
        ("crash info", triage.run_crash_info(report, last_run)),
        ("missing crash", triage.run_missing_crash(report)),
    ]
    for name, result in results:
        _print_result(name, result)
    return 1 if any(result.failed for _, result in results) else 0


if __name__ == '__main__':
    sys.exit(main())
