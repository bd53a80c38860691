"""
faultline CLI — command-line interface for the fault injection engine.

Usage:
    faultline version
    faultline info
    faultline strategies [--category network]
    faultline templates [--category infrastructure]
    faultline config validate faultline.yaml
    faultline run network-degradation --confirm CODE [--config faultline.yaml]
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

import yaml

from faultline import __version__
from faultline.chaos.config import EngineConfig
from faultline.chaos.engine import ChaosEngineError, FaultInjectionEngine
from faultline.chaos.library import ChaosLibrary
from faultline.chaos.loader import load_engine_config
from faultline.chaos.strategies import list_strategies
from faultline.chaos.types import ExperimentResult


def _load_config(path: Optional[str]) -> EngineConfig:
    return load_engine_config(path) if path else EngineConfig()


async def _run_template(
    engine: FaultInjectionEngine,
    library: ChaosLibrary,
    template_id: str,
    confirm: str,
    name: Optional[str],
) -> ExperimentResult:
    if not engine.arm(confirm):
        raise ChaosEngineError("Invalid confirmation code, engine not armed")
    overrides: Dict[str, Any] = {"name": name} if name else {}
    experiment = library.instantiate(template_id, **overrides)
    assert experiment is not None
    try:
        return await engine.run_experiment(experiment)
    finally:
        await engine.disarm()


def cli(args: Optional[List[str]] = None) -> int:
    """Main CLI entry point. Returns exit code."""
    parser = argparse.ArgumentParser(
        prog="faultline",
        description="Controlled fault injection for resilience testing",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("version", help="Show version")
    subparsers.add_parser("info", help="Show system info")

    strategies_parser = subparsers.add_parser("strategies", help="List registered fault strategies")
    strategies_parser.add_argument("--category", help="network, application, resource or infrastructure")

    templates_parser = subparsers.add_parser("templates", help="List experiment templates")
    templates_parser.add_argument("--category")

    config_parser = subparsers.add_parser("config", help="Engine configuration")
    config_sub = config_parser.add_subparsers(dest="config_command")
    validate_parser = config_sub.add_parser("validate", help="Validate a YAML config file")
    validate_parser.add_argument("path")

    run_parser = subparsers.add_parser("run", help="Run a library template")
    run_parser.add_argument("template_id")
    run_parser.add_argument("--confirm", required=True, help="Arm confirmation code")
    run_parser.add_argument("--config", help="YAML config file")
    run_parser.add_argument("--name", help="Override the experiment name")

    parsed = parser.parse_args(args)

    if parsed.command == "version":
        print(f"faultline {__version__}")
        return 0

    if parsed.command == "info":
        library = ChaosLibrary()
        info: Dict[str, Any] = {
            "name": "faultline",
            "version": __version__,
            "strategy_categories": sorted({s["category"] for s in list_strategies()}),
            "strategies": len(list_strategies()),
            "templates": [t.template_id for t in library.list_templates()],
        }
        print(json.dumps(info, indent=2))
        return 0

    if parsed.command == "strategies":
        strategies = list_strategies(parsed.category)
        if not strategies:
            print(f"No strategies in category '{parsed.category}'.", file=sys.stderr)
            return 1
        for s in strategies:
            print(f"{s['name']:<22} {s['category']:<15} {s['severity']}")
        return 0

    if parsed.command == "templates":
        templates = ChaosLibrary().list_templates(category=parsed.category)
        for t in templates:
            names = ", ".join(s.name for s in t.strategies)
            print(f"{t.template_id:<22} {t.severity:<9} {names}")
        return 0

    if parsed.command == "config":
        if parsed.config_command == "validate":
            try:
                config = load_engine_config(parsed.path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                print(f"Invalid config {parsed.path}: {e}", file=sys.stderr)
                return 1
            print(json.dumps(config.model_dump(), indent=2))
            return 0
        config_parser.print_help()
        return 1

    if parsed.command == "run":
        library = ChaosLibrary()
        if library.get(parsed.template_id) is None:
            print(f"Unknown template '{parsed.template_id}'. Valid: {sorted(t.template_id for t in library.list_templates())}", file=sys.stderr)
            return 1
        try:
            config = _load_config(parsed.config)
        except (OSError, ValueError, yaml.YAMLError) as e:
            print(f"Invalid config {parsed.config}: {e}", file=sys.stderr)
            return 1
        logging.basicConfig(
            level=config.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        engine = FaultInjectionEngine(config)
        try:
            result = asyncio.run(
                _run_template(engine, library, parsed.template_id, parsed.confirm, parsed.name)
            )
        except ChaosEngineError as e:
            print(f"Experiment not run: {e}", file=sys.stderr)
            return 1
        print(json.dumps(result.to_dict(), indent=2))
        return 0

    parser.print_help()
    return 1


def main() -> None:
    sys.exit(cli())


if __name__ == "__main__":
    main()
