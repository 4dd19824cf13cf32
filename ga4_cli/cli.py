#!/usr/bin/env python3
"""
ga4-cli - Google Analytics 4 reporting from the command line

Authentication:
  OAuth desktop flow. Set CLIENT_ID and CLIENT_SECRET in the environment,
  a .env file, or ~/.ga4-cli/config.yaml (see `ga4-cli init`). The first
  report opens a browser and asks for the authorization code; the token is
  cached in ~/.ga4-cli/token.json.

Examples:
  ga4-cli report -p 123456789 -m totalUsers,sessions -d country
  ga4-cli report -p 123456789 -m screenPageViews -d pagePath --filter "pagePath=~/blog/" -f json
  ga4-cli compare -p 123456789 -m totalUsers -d pagePath
  ga4-cli events -p 123456789 -f markdown -o events.md
  ga4-cli pages -p 123456789 -f csv
  ga4-cli auth logout
"""
import argparse
import datetime
import json
import logging
import os
import sys

from . import __version__
from .auth import AuthContext, GA4Auth
from .client import GA4Client
from .config import CONFIG_FILE, ERROR_LOG_FILE, ensure_config_dir, init_config, load_config
from .console import say
from .errors import GA4CLIError, MissingConfiguration
from .formatter import FORMATS, format_comparison, format_report, save_to_file
from .models import DateRange, ReportRequest

logger = logging.getLogger("ga4_cli")


# =============================================================================
# Logging and errors
# =============================================================================

def setup_logging(debug=False):
    level = logging.DEBUG if debug else logging.WARNING
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(name)s %(levelname)s: %(message)s" if debug else "%(levelname)s: %(message)s"
    ))
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False


def log_error(error, context="unknown"):
    ensure_config_dir(os.path.dirname(ERROR_LOG_FILE))
    timestamp = datetime.datetime.now().isoformat()
    entry = f"[{timestamp}] [{context}] {error}\n"
    with open(ERROR_LOG_FILE, "a") as f:
        f.write(entry)


def exit_with_error(error, context):
    try:
        log_error(error, context)
        logged = True
    except OSError:
        logged = False
    print(f"Error: {error}", file=sys.stderr)
    if logged:
        print(f"Details logged to: {ERROR_LOG_FILE}", file=sys.stderr)
    sys.exit(1)


# =============================================================================
# Helpers
# =============================================================================

def split_list(value):
    """Split a comma-separated option into a list of names."""
    if not value:
        return []
    return [v.strip() for v in value.split(",") if v.strip()]


def default_range(days=7, today=None):
    today = today or datetime.date.today()
    return DateRange(
        start_date=(today - datetime.timedelta(days=days)).isoformat(),
        end_date=today.isoformat(),
    )


def default_comparison_ranges(today=None):
    """This week (last 7 days including today) vs. the 7 days before it."""
    today = today or datetime.date.today()
    current_start = today - datetime.timedelta(days=6)
    previous_end = current_start - datetime.timedelta(days=1)
    previous_start = previous_end - datetime.timedelta(days=6)
    return (
        DateRange(current_start.isoformat(), today.isoformat()),
        DateRange(previous_start.isoformat(), previous_end.isoformat()),
    )


def resolve_range(args, days=7):
    fallback = default_range(days)
    return DateRange(
        start_date=args.start_date or fallback.start_date,
        end_date=args.end_date or fallback.end_date,
    )


def resolve_property(args, config):
    property_id = args.property or config.property_id
    if not property_id:
        raise MissingConfiguration(
            "GA4 Property ID required. Use --property/-p or set GA4_PROPERTY_ID.\n"
            "Find your Property ID in GA4 Admin > Property Settings"
        )
    return property_id


def make_client(config):
    auth = GA4Auth(AuthContext.from_config(config))
    client = GA4Client(auth)
    say("Initializing GA4 client...")
    client.initialize()
    return client


def emit(output, path=None):
    if path:
        save_to_file(output, path)
    else:
        print(output)


# =============================================================================
# Commands
# =============================================================================

def cmd_report(args, config):
    property_id = resolve_property(args, config)
    metrics = split_list(args.metrics)
    dimensions = split_list(args.dimensions)
    date_range = resolve_range(args)
    request = ReportRequest(
        property_id=property_id,
        metrics=metrics,
        dimensions=dimensions,
        date_ranges=(date_range,),
        limit=args.limit,
        offset=args.offset,
        dimension_filter=args.filter,
        order_by=args.order_by,
    )

    client = make_client(config)
    say(f"\nGA4 Report: {date_range.start_date} to {date_range.end_date}")
    say(f"Property: {property_id}")
    say(f"Metrics: {', '.join(metrics)}")
    if dimensions:
        say(f"Dimensions: {', '.join(dimensions)}")

    result = client.run_report(request)
    emit(format_report(result, args.format), args.output)
    say(f"\nTotal rows: {result.row_count}")


def cmd_compare(args, config):
    property_id = resolve_property(args, config)
    metrics = split_list(args.metrics)
    dimensions = split_list(args.dimensions)

    explicit = [args.current_start, args.current_end, args.previous_start, args.previous_end]
    if all(explicit):
        current = DateRange(args.current_start, args.current_end)
        previous = DateRange(args.previous_start, args.previous_end)
    else:
        if any(explicit):
            say("Incomplete date ranges given; comparing this week with last week.")
        current, previous = default_comparison_ranges()

    client = make_client(config)
    say(f"Comparing data for property {property_id}...")
    say(f"Current period: {current.start_date} to {current.end_date}")
    say(f"Previous period: {previous.start_date} to {previous.end_date}")

    result = client.compare_reports(property_id, current, previous, dimensions, metrics, args.limit)
    output = format_comparison(
        result["current"], result["previous"], args.format, "Current Period", "Previous Period"
    )
    emit(output, args.output)
    say(f"\nCurrent period rows: {result['current'].row_count}")
    say(f"Previous period rows: {result['previous'].row_count}")


def _fixed_report(method, label):
    def run(args, config):
        property_id = resolve_property(args, config)
        date_range = resolve_range(args)
        client = make_client(config)
        say(f"Fetching top {label} for property {property_id}...")
        say(f"Date range: {date_range.start_date} to {date_range.end_date}")
        result = getattr(client, method)(property_id, date_range, args.limit)
        emit(format_report(result, args.format), args.output)
        say(f"\nTotal {label}: {result.row_count}")
    return run


cmd_pages = _fixed_report("get_top_pages", "pages")
cmd_events = _fixed_report("get_top_events", "events")
cmd_countries = _fixed_report("get_users_by_country", "countries")


def cmd_fields(args, config):
    fields = {
        "dimensions": GA4Client.available_dimensions(),
        "metrics": GA4Client.available_metrics(),
    }
    if args.json:
        print(json.dumps(fields, indent=2))
        return
    for kind, names in fields.items():
        print(f"\n=== Common {kind} ===\n")
        for name in names:
            print(f"  {name}")


def cmd_auth(args, config):
    auth = GA4Auth(AuthContext.from_config(config))
    if args.auth_command == "login":
        auth.authenticate()
    elif args.auth_command == "logout":
        auth.logout()
    elif args.auth_command == "status":
        status = auth.status()
        if args.json:
            print(json.dumps(status, indent=2))
        elif not status["authenticated"]:
            print("Not authenticated. Run: ga4-cli auth login")
        else:
            print(f"Token file: {status['token_path']}")
            print(f"Refresh token: {'yes' if status['has_refresh_token'] else 'no'}")
            print(f"Expires: {status['expires'] or 'unknown'}")
            print(f"Scope: {status['scope'] or 'unknown'}")


def cmd_init(args, config):
    section = init_config(args.config_file)
    print("Configuration saved!")
    print(f"Config file: {CONFIG_FILE}")
    if section.get("property_id"):
        print(f"Default property: {section['property_id']}")


# =============================================================================
# Main CLI
# =============================================================================

def _add_output_options(p, default_limit):
    p.add_argument("--property", "-p", help="GA4 Property ID (or set GA4_PROPERTY_ID env var)")
    p.add_argument("--format", "-f", choices=FORMATS, default="table",
                   help="Output format (default: table)")
    p.add_argument("--output", "-o", help="Write output to this file instead of stdout")
    p.add_argument("--limit", "-l", type=int, default=default_limit,
                   help=f"Max rows (default: {default_limit})")


def _add_date_options(p):
    p.add_argument("--start-date", "-s",
                   help="Start date (YYYY-MM-DD or relative like 30daysAgo; default: 7 days ago)")
    p.add_argument("--end-date", "-e",
                   help="End date (YYYY-MM-DD or relative like yesterday; default: today)")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="ga4-cli",
        description="Google Analytics 4 reports from the command line",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s report -p 123456789 -m totalUsers,sessions -d country
  %(prog)s report -p 123456789 -m screenPageViews -d pagePath --order-by screenPageViews:desc
  %(prog)s compare -p 123456789 -m totalUsers -d pagePath
  %(prog)s events -p 123456789 -f markdown -o events.md
  %(prog)s pages -p 123456789 -f json
  %(prog)s auth status
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--debug", action="store_true", help="Show debug info (for troubleshooting)")
    parser.add_argument("--env-file", help="Load CLIENT_ID/CLIENT_SECRET from this .env file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # -------------------------------------------------------------------------
    # report
    # -------------------------------------------------------------------------
    report_parser = subparsers.add_parser("report", help="Generate a custom GA4 report")
    _add_output_options(report_parser, 100)
    _add_date_options(report_parser)
    report_parser.add_argument("--metrics", "-m", required=True, help="Comma-separated metrics")
    report_parser.add_argument("--dimensions", "-d", help="Comma-separated dimensions")
    report_parser.add_argument("--offset", type=int, default=0, help="Row offset (default: 0)")
    report_parser.add_argument("--filter",
                               help="Filter (e.g., 'pagePath=~/blog/', 'pagePath==exact', 'pagePath!=exclude')")
    report_parser.add_argument("--order-by",
                               help="Order by field (e.g., 'screenPageViews:desc')")
    report_parser.set_defaults(func=cmd_report)

    # -------------------------------------------------------------------------
    # compare
    # -------------------------------------------------------------------------
    compare_parser = subparsers.add_parser("compare", help="Compare two time periods")
    _add_output_options(compare_parser, 100)
    compare_parser.add_argument("--metrics", "-m", required=True, help="Comma-separated metrics")
    compare_parser.add_argument("--dimensions", "-d", help="Comma-separated dimensions")
    compare_parser.add_argument("--current-start", help="Current period start date (YYYY-MM-DD)")
    compare_parser.add_argument("--current-end", help="Current period end date (YYYY-MM-DD)")
    compare_parser.add_argument("--previous-start", help="Previous period start date (YYYY-MM-DD)")
    compare_parser.add_argument("--previous-end", help="Previous period end date (YYYY-MM-DD)")
    compare_parser.set_defaults(func=cmd_compare)

    # -------------------------------------------------------------------------
    # fixed reports
    # -------------------------------------------------------------------------
    for name, help_text, func in (
        ("pages", "Top pages by views", cmd_pages),
        ("events", "Top events by count", cmd_events),
        ("countries", "Users and sessions by country", cmd_countries),
    ):
        p = subparsers.add_parser(name, help=help_text)
        _add_output_options(p, 20)
        _add_date_options(p)
        p.set_defaults(func=func)

    fields_parser = subparsers.add_parser("fields", help="List common dimensions and metrics")
    fields_parser.add_argument("--json", action="store_true", help="Output as JSON")
    fields_parser.set_defaults(func=cmd_fields)

    # -------------------------------------------------------------------------
    # auth
    # -------------------------------------------------------------------------
    auth_parser = subparsers.add_parser("auth", help="Manage the cached OAuth token")
    auth_subparsers = auth_parser.add_subparsers(dest="auth_command", help="Auth commands")
    auth_subparsers.add_parser("login", help="Authorize (or reuse the cached token)")
    auth_subparsers.add_parser("logout", help="Revoke and delete the cached token")
    status_parser = auth_subparsers.add_parser("status", help="Show the cached token")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")
    auth_parser.set_defaults(func=cmd_auth)

    init_parser = subparsers.add_parser("init", help="Install a YAML config file")
    init_parser.add_argument("config_file", help="YAML file with a ga4: section")
    init_parser.set_defaults(func=cmd_init)

    return parser, auth_parser


def main(argv=None):
    parser, auth_parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)
    if args.command == "auth" and not args.auth_command:
        auth_parser.print_help()
        sys.exit(1)

    setup_logging(args.debug or bool(os.environ.get("GA4_DEBUG")))

    try:
        config = load_config(env_file=args.env_file)
        args.func(args, config)
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        if not isinstance(e, GA4CLIError):
            logger.debug("Unhandled error", exc_info=True)
        exit_with_error(e, f"ga4-cli {args.command}")


if __name__ == "__main__":
    main()
