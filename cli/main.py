"""Grid Load Testing Framework CLI - Command line interface."""

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

from common.exceptions import InvalidConfiguration
from common.utils import load_yaml
from orchestrator.config import Settings, init_settings
from orchestrator.core.planner import plan_infrastructure
from orchestrator.core.report import ReportGenerator
from orchestrator.main import EXIT_INVALID_CONFIGURATION, configure_logging, run_campaign
from orchestrator.provisioning.digitalocean import DEFAULT_TAGS, DigitalOceanProvisioner
from orchestrator.storage.report_store import ReportStore


def load_settings(args) -> Settings:
    """Settings from env/.env, then the YAML file, then command line flags."""
    overrides = {}
    if getattr(args, "config", None):
        overrides.update(load_yaml(args.config))

    flags = {
        "max_load": getattr(args, "max_load", None),
        "increment_step": getattr(args, "increment", None),
        "per_unit_capacity": getattr(args, "capacity", None),
        "target_url": getattr(args, "target_url", None),
        "data_path": getattr(args, "data_path", None),
    }
    overrides.update({k: v for k, v in flags.items() if v is not None})
    if getattr(args, "no_cleanup", False):
        overrides["auto_cleanup"] = False

    return init_settings(**overrides)


def cmd_run(args):
    """Run an incremental load test campaign."""
    settings = load_settings(args)
    configure_logging(settings)
    sys.exit(asyncio.run(run_campaign(settings)))


def cmd_plan(args):
    """Show the infrastructure plan without provisioning anything."""
    settings = load_settings(args)
    plan = plan_infrastructure(settings)

    print(f"Target: {settings.target_url}")
    print(f"Load: {settings.increment_step} to {plan.max_load} in steps of {settings.increment_step}")
    print(f"Capacity per node: {plan.per_unit_capacity}")
    print(f"Nodes required: {plan.nodes_required} (+1 hub)")
    print(f"Initial nodes: {plan.initial_nodes}")
    print(f"Estimated hourly cost: ${plan.hourly_cost:.2f}")


def cmd_cleanup(args):
    """Delete every droplet carrying the campaign tags."""
    settings = load_settings(args)
    if not settings.do_token:
        print("Error: GRIDLOAD_DO_TOKEN is not set")
        sys.exit(EXIT_INVALID_CONFIGURATION)

    async def _cleanup():
        async with DigitalOceanProvisioner(
            token=settings.do_token,
            api_url=settings.do_api_url,
        ) as provisioner:
            return await provisioner.destroy_tagged(args.tag or DEFAULT_TAGS)

    deleted, failed = asyncio.run(_cleanup())
    for name in deleted:
        print(f"  ✓ Deleted {name}")
    for name in failed:
        print(f"  ✗ Failed to delete {name}")
    print(f"\nCleanup complete: {len(deleted)} deleted, {len(failed)} failed")
    if failed:
        sys.exit(1)


def cmd_campaigns(args):
    """List recorded campaigns."""
    settings = load_settings(args)
    store = ReportStore(settings.data_path)
    campaigns = asyncio.run(store.get_campaigns(limit=args.limit))

    if not campaigns:
        print("No campaigns found")
        return

    print(f"{'ID':<40} {'Status':<11} {'Steps':<6} {'Max OK':<8} {'Break':<8} {'Cost':<8}")
    print("-" * 85)
    for c in campaigns:
        max_ok = c.get('max_successful_load')
        breaking = c.get('breaking_point')
        cost = c.get('estimated_cost')
        print(
            f"{c.get('id', ''):<40} {c.get('status', ''):<11} {c.get('steps_run') or 0:<6} "
            f"{max_ok if max_ok is not None else '—':<8} {breaking if breaking is not None else '—':<8} "
            f"{('$' + cost) if cost else '—':<8}"
        )


def cmd_report(args):
    """Print the summary of a saved report."""
    settings = load_settings(args)
    store = ReportStore(settings.data_path)

    path = Path(args.target)
    if not path.exists():
        campaign = asyncio.run(store.get_campaign(args.target))
        if not campaign or not campaign.get('report_path'):
            print(f"No report found for {args.target}")
            sys.exit(1)
        path = Path(campaign['report_path'])

    report = store.load_report(path)
    for line in ReportGenerator.render_summary(report, str(path)):
        print(line)

    if args.steps:
        print(f"\n{'Load':<8} {'Result':<8} {'Joined':<8} {'Duration':<10} Errors")
        for r in report.results:
            joined = r.metrics.joined_count
            print(
                f"{r.requested_load:<8} {'PASS' if r.success else 'FAIL':<8} "
                f"{joined if joined is not None else '—':<8} {r.duration_seconds:<10.1f} {r.error_count}"
            )


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Grid Load Testing Framework CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-c", "--config", help="YAML file with settings")
    parser.add_argument("-d", "--data-path", help="Data directory (default: ./data)")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # run
    run_parser = subparsers.add_parser("run", help="Run a load test campaign")
    run_parser.add_argument("--max-load", type=int, help="Maximum participants")
    run_parser.add_argument("--increment", type=int, help="Participants added per step")
    run_parser.add_argument("--capacity", type=int, help="Participants per node")
    run_parser.add_argument("--target-url", help="Instance under test")
    run_parser.add_argument("--no-cleanup", action="store_true", help="Keep units after a completed run")
    run_parser.set_defaults(func=cmd_run)

    # plan
    plan_parser = subparsers.add_parser("plan", help="Show the infrastructure plan")
    plan_parser.add_argument("--max-load", type=int, help="Maximum participants")
    plan_parser.add_argument("--increment", type=int, help="Participants added per step")
    plan_parser.add_argument("--capacity", type=int, help="Participants per node")
    plan_parser.set_defaults(func=cmd_plan)

    # cleanup
    cleanup_parser = subparsers.add_parser("cleanup", help="Delete tagged droplets")
    cleanup_parser.add_argument("-t", "--tag", action="append", help="Tag to clean up (repeatable)")
    cleanup_parser.set_defaults(func=cmd_cleanup)

    # campaigns
    campaigns_parser = subparsers.add_parser("campaigns", help="List campaigns")
    campaigns_parser.add_argument("-l", "--limit", type=int, default=20, help="Limit results")
    campaigns_parser.set_defaults(func=cmd_campaigns)

    # report
    report_parser = subparsers.add_parser("report", help="Show a campaign report")
    report_parser.add_argument("target", help="Campaign ID or report file")
    report_parser.add_argument("-s", "--steps", action="store_true", help="Show every step")
    report_parser.set_defaults(func=cmd_report)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except (InvalidConfiguration, ValidationError) as e:
        print(f"Invalid configuration: {e}")
        sys.exit(EXIT_INVALID_CONFIGURATION)
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
