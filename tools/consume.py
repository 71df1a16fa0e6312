"""Consume registry fixtures and validate them against the Python registry."""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import click

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT / "tools"))

from tranche_escrow.state_digest import compute_state_digest  # noqa: E402
from tranche_escrow.state_transition import apply_call  # noqa: E402
from fixtures_io import call_from_json, state_from_json, state_to_json  # noqa: E402
from yaml_dump import YAML_SUFFIXES, load_yaml  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


@dataclass
class ToolConfig:
    """Fixture tooling configuration."""
    fixtures_dir: str = str(ROOT / "fixtures")
    verbose: bool = False

    @classmethod
    def from_env(cls) -> "ToolConfig":
        config = cls()
        config.fixtures_dir = os.environ.get("ESCROW_FIXTURES_DIR", config.fixtures_dir)
        config.verbose = os.environ.get("ESCROW_VERBOSE", "").lower() in ("1", "true", "yes")
        return config


def _load(path: Path) -> Any:
    if path.suffix in YAML_SUFFIXES:
        return load_yaml(path)
    return json.loads(path.read_text())


def check_case(case: dict[str, Any]) -> Optional[str]:
    """Replay one case. Returns a failure reason, or None when it matches."""
    registry = state_from_json(case["pre_state"])
    result = apply_call(registry, call_from_json(case["call"]))

    expected = case["expected"]
    if result.ok != expected["ok"]:
        return "ok_mismatch"

    actual_err = result.error.code.name if result.error else None
    if actual_err != expected["error"]:
        return "error_mismatch"

    if result.ok and expected.get("order_id") is not None and result.order_id != expected["order_id"]:
        return "order_id_mismatch"

    digest = compute_state_digest(state_to_json(registry))
    expected_digest = expected.get("state_digest")
    if expected_digest is None:
        expected_digest = compute_state_digest(expected["post_state"])
    if digest != expected_digest:
        return "state_digest_mismatch"
    return None


def check_file(path: Path) -> list[str]:
    failures: list[str] = []
    data = _load(path)
    cases = data.get("cases", []) if isinstance(data, dict) else []
    for case in cases:
        reason = check_case(case)
        if reason is not None:
            failures.append(f"{path.name}:{case['name']}: {reason}")
        else:
            logger.debug(f"{path.name}:{case['name']}: ok")
    logger.info(f"{path} - {len(cases)} cases, {len(failures)} failures")
    return failures


def find_fixture_files(root: Path) -> list[Path]:
    if root.is_file():
        return [root]
    files: list[Path] = []
    for pattern in ("*.json", "*.yaml", "*.yml"):
        files.extend(root.rglob(pattern))
    return sorted(files)


@click.command()
@click.option(
    "--fixtures",
    default=None,
    help="Path to fixtures directory or a single fixture file",
)
@click.option(
    "--verbose",
    is_flag=True,
    help="Enable verbose output",
)
def main(fixtures: Optional[str], verbose: bool) -> None:
    """Replay registry fixtures and report mismatches."""
    config = ToolConfig.from_env()
    if fixtures:
        config.fixtures_dir = fixtures
    if verbose:
        config.verbose = True
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    files = find_fixture_files(Path(config.fixtures_dir))
    if not files:
        logger.error(f"No fixture files found in {config.fixtures_dir}")
        sys.exit(1)

    failures: list[str] = []
    for path in files:
        failures.extend(check_file(path))

    if failures:
        for f in failures:
            click.echo(f"FAIL {f}")
        sys.exit(1)

    click.echo("All fixtures passed")


if __name__ == "__main__":
    main()
