"""
Versioned envelopes for the JSON documents gl-recon reads and writes.

Every document starts with {"contract": {"name", "version"}}. Commands that
pick up an earlier command's output (queue, override, allocate, journal) open
it through ``load_document`` so a foreign file, or one written under another
major version, is refused instead of half-read.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

CONTRACT_VERSIONS = {
    "gl_recon.import_summary": "1.0.0",
    "gl_recon.ledger": "1.0.0",
    "gl_recon.date_check": "1.0.0",
    "gl_recon.override_log": "1.0.0",
    "gl_recon.recon_state": "1.0.0",
    "gl_recon.balances": "1.0.0",
}


class ContractError(ValueError):
    pass


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def _major(version: str) -> str:
    return str(version).split(".", 1)[0]


def read_contract(payload: Any, name: str) -> dict[str, Any]:
    """Return ``payload`` if it is a ``name`` document with a compatible major version."""
    contract = payload.get("contract") if isinstance(payload, dict) else None
    if not isinstance(contract, dict) or contract.get("name") != name:
        raise ContractError(f"Not a {name} document.")
    expected = CONTRACT_VERSIONS[name]
    found = contract.get("version") or "?"
    if _major(found) != _major(expected):
        raise ContractError(f"{name} version {found} is not supported (this build writes {expected}).")
    return payload


def load_document(path: Path, name: str) -> dict[str, Any]:
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ContractError(f"Could not read {path}: {exc}") from exc
    try:
        return read_contract(payload, name)
    except ContractError as exc:
        raise ContractError(f"{path}: {exc}") from exc


def build_run_summary(
    *,
    command: str,
    input_path: Path | None,
    metrics: Mapping[str, Any] | None = None,
    warnings: Iterable[str] = (),
    outputs: Mapping[str, Path] | None = None,
    status: str = "ok",
) -> dict[str, Any]:
    warnings = list(warnings)
    return {
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_file": str(input_path) if input_path else None,
        "outputs": {key: str(value) for key, value in (outputs or {}).items()},
        "warnings": warnings,
        "metrics": dict(metrics or {}),
    }
