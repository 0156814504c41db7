#!/usr/bin/env python3
import sys
import argparse
from pathlib import Path

# Add parent dir to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from query_analyser.batch_analyser import BatchAnalyser
from query_analyser.cloudwatch_metrics import get_cloudwatch_metrics
from query_analyser.config import DEFAULT_CONFIG_FILE, QUERY_PREFIX, load_config
from query_analyser.db_connector import DatabaseConnector
from query_analyser.exceptions import QueryAnalyserError
from query_analyser.logger import setup_logging


def print_progress(current: int, total: int):
    """Print progress bar"""
    bar_width = 40
    progress = current / total
    filled = int(bar_width * progress)
    bar = '=' * filled + '-' * (bar_width - filled)
    print(f'\r[{bar}] {current}/{total} queries analysed', end='', flush=True)


def main():
    parser = argparse.ArgumentParser(
        description='Query Analyser - Profile a query corpus and suggest primary keys and indexes'
    )

    parser.add_argument(
        '-c', '--config',
        type=str,
        default=DEFAULT_CONFIG_FILE,
        help=f'Properties file with connection settings and query.* entries (default: {DEFAULT_CONFIG_FILE})'
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default='report',
        help='Directory for report.json and replay scripts (default: report)'
    )

    parser.add_argument(
        '--format',
        choices=['summary', 'json', 'both'],
        default='summary',
        help='Console output format (default: summary)'
    )

    parser.add_argument(
        '--plan-count',
        type=int,
        help='Warm-up executions per query (overrides plan_count)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Include raw column usage per table in the report'
    )

    parser.add_argument(
        '--no-replay',
        action='store_true',
        help='Do not write .cli replay scripts'
    )

    parser.add_argument(
        '--skip-analyze',
        action='store_true',
        help='Do not run ANALYZE before inspecting plans'
    )

    parser.add_argument(
        '--show-ddl',
        action='store_true',
        help='Show CREATE INDEX statements for all suggestions'
    )

    parser.add_argument(
        '--log-level',
        default='WARNING',
        help='Log level (default: WARNING)'
    )

    parser.add_argument(
        '--log-file',
        type=str,
        help='Also write the log to this file'
    )

    args = parser.parse_args()
    setup_logging(args.log_level, args.log_file)

    try:
        config = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        return 1

    if args.plan_count is not None:
        if args.plan_count < 0:
            print("ERROR: --plan-count cannot be negative")
            return 1
        config.plan_count = args.plan_count
    config.debug = config.debug or args.debug

    if not config.queries:
        print(f"\nNo {QUERY_PREFIX}* entries found in {args.config}")
        return 0

    # Connect to database
    print(f"Connecting to {config.database.describe()}...")
    try:
        db = DatabaseConnector.from_config(config.database)
        if not db.test_connection():
            print("ERROR: Failed to connect to database")
            return 1
        print("Connected successfully")
    except (ValueError, ConnectionError) as e:
        print(f"ERROR: {e}")
        return 1

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    analyser = BatchAnalyser(
        db,
        plan_count=config.plan_count,
        replay_dir=None if args.no_replay else output_dir,
        debug=config.debug,
        metrics=get_cloudwatch_metrics(),
    )

    exit_code = 0
    try:
        if not args.skip_analyze:
            print("Running ANALYZE...")
            db.analyze_database()

        print(f"\nAnalysing {len(config.queries)} queries ({config.plan_count} warm-up runs each)...")
        print()
        report = analyser.analyse_queries(config.queries, progress_callback=print_progress)
        print("\n")
    except (QueryAnalyserError, RuntimeError, ConnectionError) as e:
        print("\n")
        print(f"ERROR: analysis aborted at {analyser.failed_query_id}: {e}")
        report = analyser.build_report(len(config.queries), error=e)
        exit_code = 1

    # Output results
    if args.format in ('summary', 'both'):
        print(report.get_summary())

    if args.format in ('json', 'both'):
        print("\n" + "=" * 60)
        print("JSON REPORT")
        print("=" * 60)
        print(report.to_json())

    if args.show_ddl:
        ddl = [
            index['ddl']
            for table in report.tables
            for index in table['recommendations']['indexes']
        ]
        if ddl:
            print("\n" + "=" * 60)
            print("CREATE INDEX STATEMENTS")
            print("=" * 60)
            for statement in ddl:
                print(statement)
            print()

    report_path = output_dir / 'report.json'
    report_path.write_text(report.to_json(), encoding='utf-8')
    print(f"\nReport saved to {report_path}")

    db.close()
    return exit_code


if __name__ == '__main__':
    sys.exit(main())
