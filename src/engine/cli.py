from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional

import typer

from .engine import PatchEngine
from src.applier.applier import ApplyItem
from src.common.config import EngineConfig
from src.common.errors import EngineError, ValidationFault
from src.common.logging_setup import configure_logging
from src.common.models import Backup, Recommendation, ResourceCoordinate
from src.patcher.builder import PatchDocument
from src.recommendations.krr import parse_krr_output
from src.rollback.manager import RollbackItem

app = typer.Typer(help="Generate, apply, and roll back workload resource patches.")


def _build_engine(config_path: Optional[Path]) -> PatchEngine:
    config = EngineConfig.from_env(config_path)
    configure_logging(config.log_level)
    return PatchEngine(config)


@app.command()
def strategies(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Engine configuration YAML."),
) -> None:
    engine = _build_engine(config)
    typer.echo(json.dumps(engine.strategies(), indent=2))


@app.command()
def generate(
    recommendations: Path = typer.Option(
        Path("data/recommendations.json"),
        "--recommendations",
        "-r",
        help="KRR scan output or a JSON array of recommendation records.",
    ),
    out: Path = typer.Option(
        Path("data/patches.json"),
        "--out",
        "-o",
        help="Where to write generated patch documents.",
    ),
    strategy: Optional[str] = typer.Option(
        None,
        "--strategy",
        "-s",
        help="Strategy name; defaults to the configured strategy.",
    ),
    cumulative: bool = typer.Option(
        False,
        "--cumulative/--single",
        help="Merge recommendations for the same resource into one patch.",
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Engine configuration YAML."),
) -> None:
    engine = _build_engine(config)
    records = _load_recommendations(recommendations)
    try:
        generated = engine.generate(records, strategy=strategy, cumulative=cumulative)
    except ValidationFault as exc:
        raise typer.BadParameter(str(exc)) from exc

    payload: Any
    if isinstance(generated, list):
        payload = [document.to_dict() for document in generated]
        count = len(generated)
    else:
        payload = generated.to_dict()
        count = len(generated.documents)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    typer.echo(f"Generated {count} patch(es) from {len(records)} recommendation(s) to {out.resolve()}")


@app.command()
def apply(
    patches: Path = typer.Option(
        Path("data/patches.json"),
        "--patches",
        "-p",
        help="Path to generated patches JSON file.",
    ),
    out: Path = typer.Option(
        Path("data/applied.json"),
        "--out",
        "-o",
        help="Where to write apply results (including backups).",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Validate server-side without persisting changes.",
    ),
    backup: Optional[bool] = typer.Option(
        None,
        "--backup/--no-backup",
        help="Snapshot each resource before a real apply (defaults to configuration).",
    ),
    monitor: bool = typer.Option(
        False,
        "--monitor",
        help="Wait for each patched resource to become ready.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        min=0,
        help="Readiness timeout in seconds.",
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Engine configuration YAML."),
) -> None:
    engine = _build_engine(config)
    items = [_apply_item(record) for record in _load_patches(patches)]
    try:
        batch = engine.apply(items, dry_run=dry_run, create_backup=backup, monitor=monitor, timeout=timeout)
    except EngineError as exc:
        typer.echo(f"Apply aborted: {exc}", err=True)
        raise typer.Exit(code=1) from exc

    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(batch.to_dict(), indent=2), encoding="utf-8")
    typer.echo(f"Applied {batch.successful}/{batch.total} patch(es) to {out.resolve()}")


@app.command()
def rollback(
    backups: Path = typer.Option(
        Path("data/applied.json"),
        "--backups",
        "-b",
        help="Backups JSON: an apply results file or an array of backup records.",
    ),
    out: Path = typer.Option(
        Path("data/rolled_back.json"),
        "--out",
        "-o",
        help="Where to write rollback results.",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Validate the restore server-side without persisting it.",
    ),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Engine configuration YAML."),
) -> None:
    engine = _build_engine(config)
    items = _rollback_items(backups)
    batch = engine.rollback(items, dry_run=dry_run)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(batch.to_dict(), indent=2), encoding="utf-8")
    typer.echo(f"Rolled back {batch.successful}/{batch.total} patch(es) to {out.resolve()}")


def _load_json(path: Path, kind: str) -> Any:
    try:
        with path.open("r", encoding="utf-8") as handle:
            return json.load(handle)
    except FileNotFoundError as exc:
        raise typer.BadParameter(f"{kind.title()} file not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{kind.title()} file is not valid JSON: {exc}") from exc


def _load_patches(path: Path) -> List[Any]:
    """Accept a plain array of patches or a cumulative batch written by ``generate``."""

    data = _load_json(path, "patches")
    if isinstance(data, dict) and isinstance(data.get("patches"), list):
        return data["patches"]
    if not isinstance(data, list):
        raise typer.BadParameter("Patches file must contain a JSON array or a batch with a \"patches\" array")
    return data


def _load_recommendations(path: Path) -> List[Recommendation]:
    data = _load_json(path, "recommendations")
    try:
        if isinstance(data, dict):
            return parse_krr_output(data).recommendations
        if not isinstance(data, list):
            raise typer.BadParameter("Recommendations file must contain a KRR scan or a JSON array")
        return [Recommendation.from_dict(record) for record in data]
    except (EngineError, KeyError) as exc:
        raise typer.BadParameter(f"Invalid recommendations: {exc}") from exc


def _apply_item(record: Any) -> ApplyItem:
    if not isinstance(record, dict):
        raise typer.BadParameter("Patch records must be JSON objects")
    try:
        document = PatchDocument.from_dict(record)
    except (EngineError, KeyError) as exc:
        raise typer.BadParameter(f"Invalid patch record: {exc}") from exc
    item_id = record.get("id") or (document.recommendation_ids[0] if document.recommendation_ids else None)
    return ApplyItem(coordinate=document.coordinate, document=document, item_id=item_id)


def _rollback_items(path: Path) -> List[RollbackItem]:
    data = _load_json(path, "backups")
    records = data.get("results", []) if isinstance(data, dict) else data
    if not isinstance(records, list):
        raise typer.BadParameter("Backups file must contain a JSON array or apply results")

    items: List[RollbackItem] = []
    for record in records:
        if not isinstance(record, dict):
            continue
        backup_record = record.get("backup", record)
        if not isinstance(backup_record, dict) or "backup_data" not in backup_record:
            continue
        try:
            backup = Backup.from_dict(backup_record)
            coordinate = ResourceCoordinate.from_dict(record) if "resource_name" in record else None
        except (EngineError, KeyError, ValueError) as exc:
            raise typer.BadParameter(f"Invalid backup record: {exc}") from exc
        items.append(RollbackItem(backup=backup, item_id=record.get("patch_id"), coordinate=coordinate))
    return items


if __name__ == "__main__":  # pragma: no cover
    app()
