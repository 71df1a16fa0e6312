"""Pytest hooks to generate registry fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest

from tranche_escrow.registry import OrderRegistry
from tranche_escrow.state_digest import compute_state_digest
from tranche_escrow.state_transition import Call, TransitionResult, apply_call
from tools.fixtures_io import call_to_json, state_to_json
from tools.yaml_dump import write_fixture

_STATE_CASES: dict[str, list[dict[str, Any]]] = {}
_VECTOR_CASES: dict[str, list[dict[str, Any]]] = {}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated fixtures",
    )
    parser.addoption(
        "--fixture-format",
        action="store",
        default="json",
        choices=("json", "yaml"),
        help="File format for generated fixtures",
    )


@pytest.fixture
def state_test_group() -> Callable[[str, str, OrderRegistry, Call], TransitionResult]:
    """Apply a call to a registry, collect the case under a fixture path,
    and hand the result back for assertions."""

    def _state_test_group(
        rel_path: str, name: str, registry: OrderRegistry, call: Call
    ) -> TransitionResult:
        pre_state = state_to_json(registry)
        result = apply_call(registry, call)
        post_state = state_to_json(registry)
        _STATE_CASES.setdefault(rel_path, []).append(
            {
                "name": name,
                "pre_state": pre_state,
                "call": call_to_json(call),
                "expected": {
                    "ok": result.ok,
                    "error": result.error.code.name if result.error else None,
                    "order_id": result.order_id,
                    "post_state": post_state,
                    "state_digest": compute_state_digest(post_state),
                },
            }
        )
        return result

    return _state_test_group


@pytest.fixture
def vector_test_group() -> Callable[[str, dict[str, Any]], None]:
    """Collect pre-built test_vectors under a specific fixture path."""

    def _vector_test_group(rel_path: str, vector: dict[str, Any]) -> None:
        _VECTOR_CASES.setdefault(rel_path, []).append(vector)

    return _vector_test_group


def _fixture_path(out: Path, rel_path: str, fmt: str) -> Path:
    target = out / rel_path
    if fmt == "yaml":
        return target.with_suffix(".yaml")
    return target


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    fmt = session.config.getoption("--fixture-format")

    for rel_path, cases in _STATE_CASES.items():
        if not cases:
            continue
        write_fixture(_fixture_path(out, rel_path, fmt), {"cases": cases})

    for rel_path, vectors in _VECTOR_CASES.items():
        if not vectors:
            continue
        write_fixture(_fixture_path(out, rel_path, fmt), {"test_vectors": vectors})
