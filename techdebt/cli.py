"""Command line interface for techdebt."""
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Iterable

from .config import Config, dump_default_yaml
from .facade import TechnicalDebtService
from .models import AnalysisOptions, ApplyRefactoringRequest, UpdateOptions, UpdateStrategy
from .reporting.json_report import dumps, write_json_report
from .reporting.markdown_report import write_markdown_report
from .utils.log import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="techdebt", description="Technical debt engine")
    parser.add_argument("--config", default=None, help="Path to techdebt.yml config")
    parser.add_argument("--path", default=None, help="Project root (overrides project.root)")
    parser.add_argument("--log-level", default=None, help="Logging level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Analyze code quality")
    scan.add_argument("--module", default=None, help="Analyze a single module")
    scan.add_argument("--depth", default=None, choices=["shallow", "normal", "deep"])
    scan.add_argument("--include-tests", action="store_true", help="Scan test files too")
    scan.add_argument("--include-docs", action="store_true", help="Count documentation files")
    scan.add_argument("--format", default="json", choices=["json", "md", "both"], help="Report formats")
    scan.add_argument("--out", default=None, help="Write report.json/report.md to this directory")

    opportunities = subparsers.add_parser("opportunities", help="List refactoring opportunities")
    opportunities.add_argument("--module", default=None)

    plan = subparsers.add_parser("plan", help="Create a refactoring plan")
    plan.add_argument("ids", nargs="*", help="Opportunity ids (default: all)")

    apply = subparsers.add_parser("apply", help="Apply a refactoring opportunity")
    apply.add_argument("opportunity_id")
    apply.add_argument("--auto-confirm", action="store_true")
    apply.add_argument("--backup", action="store_true", help="Back up sources first")
    apply.add_argument("--run-tests", action="store_true")

    subparsers.add_parser("deps", help="Dependency report")
    subparsers.add_parser("deps-analysis", help="Full dependency analysis")

    update = subparsers.add_parser("update", help="Update dependencies")
    update.add_argument(
        "--strategy", default="moderate", choices=[s.value for s in UpdateStrategy]
    )
    update.add_argument("--package", action="append", dest="packages", help="Limit to package")
    update.add_argument("--no-dev", action="store_true", help="Skip dev-only dependencies")
    update.add_argument("--auto-merge", action="store_true", help="Continue past failed installs")
    update.add_argument("--no-tests", action="store_true")
    update.add_argument("--no-backup", action="store_true")

    subparsers.add_parser("dashboard", help="Combined technical debt dashboard")
    subparsers.add_parser("print-schema", help="Print JSON schema")
    subparsers.add_parser("example-config", help="Print default configuration")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    config = Config.load(Path(args.config) if args.config else None)
    if args.path:
        config.project.root = str(Path(args.path).resolve())
    return config


def main(argv: Iterable[str] | None = None) -> int:
    argv = list(argv if argv is not None else sys.argv[1:])
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "print-schema":
        from .reporting.schema import SCHEMA

        json.dump(SCHEMA, sys.stdout, indent=2)
        sys.stdout.write("\n")
        return 0

    if args.command == "example-config":
        sys.stdout.write(dump_default_yaml())
        return 0

    config = load_config(args)
    setup_logging(args.log_level or config.logging.level, config.logging.file)
    service = TechnicalDebtService(config)

    try:
        result = _dispatch(args, service)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    if result is not None:
        sys.stdout.write(dumps(result) + "\n")
    return 0


def _dispatch(args: argparse.Namespace, service: TechnicalDebtService) -> object:
    if args.command == "scan":
        options = AnalysisOptions(
            include_tests=args.include_tests,
            include_docs=args.include_docs,
            depth=args.depth,
        )
        if args.module:
            return service.quality.analyze_module(args.module, options)
        report = service.quality.analyze_project(options)
        if args.out is None:
            return report
        out_dir = Path(args.out)
        out_dir.mkdir(parents=True, exist_ok=True)
        if args.format in ("json", "both"):
            write_json_report(report, out_dir / "report.json")
        if args.format in ("md", "both"):
            write_markdown_report(report, out_dir / "report.md")
        return report.summary

    if args.command == "opportunities":
        return service.planner.identify_refactoring_opportunities(args.module)

    if args.command == "plan":
        if args.ids:
            return service.plan_for(args.ids)
        return service.planner.create_refactoring_plan(
            service.planner.identify_refactoring_opportunities()
        )

    if args.command == "apply":
        return service.applier.apply_refactoring(
            ApplyRefactoringRequest(
                opportunity_id=args.opportunity_id,
                auto_confirm=args.auto_confirm,
                create_backup=args.backup,
                run_tests=args.run_tests,
            )
        )

    if args.command == "deps":
        return service.auditor.analyze_dependencies()

    if args.command == "deps-analysis":
        return service.auditor.perform_full_analysis()

    if args.command == "update":
        return service.updater.update_dependencies(
            UpdateOptions(
                strategy=UpdateStrategy(args.strategy),
                include_dev_dependencies=not args.no_dev,
                auto_merge=args.auto_merge,
                run_tests=not args.no_tests,
                create_backup=not args.no_backup,
                packages=args.packages,
            )
        )

    if args.command == "dashboard":
        return service.dashboard()
    raise ValueError(f"unknown command {args.command}")


if __name__ == "__main__":
    sys.exit(main())
