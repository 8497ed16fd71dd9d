from __future__ import annotations
import json
import os
from pathlib import Path
from typing import List, Optional
import typer
from rich import print as rprint

app = typer.Typer(add_completion=False, help="CLI for publishing draft catalog products to the live catalog")


@app.callback()
def main_callback(
    db: Optional[Path] = typer.Option(None, "--db", help="Path to the SQLite database (override .env)"),
    draft_root: Optional[Path] = typer.Option(None, "--draft-root", help="Draft image root (override .env)"),
    live_root: Optional[Path] = typer.Option(None, "--live-root", help="Live image root (override .env)"),
    workers: Optional[int] = typer.Option(None, "--workers", help="Worker threads for per-SPU file work (override .env)"),
) -> None:
    if db is not None:
        os.environ["DB_PATH"] = str(db)
    if draft_root is not None:
        os.environ["DRAFT_IMAGE_ROOT"] = str(draft_root)
    if live_root is not None:
        os.environ["LIVE_IMAGE_ROOT"] = str(live_root)
    if workers is not None:
        os.environ["PUBLISH_WORKERS"] = str(workers)


@app.command("init-db")
def init_db_cmd() -> None:
    from .config import get_config
    from .store import init_db
    config = get_config()
    init_db(config.db_path)
    rprint(f"[green]OK[/green] Database initialized: {config.db_path}")


@app.command("publish")
def publish(
    spu: Optional[List[str]] = typer.Option(None, "--spu", help="SPU to publish (repeat the option for several)"),
    publish_all: bool = typer.Option(False, "--all", help="Publish every pending draft"),
) -> None:
    from .config import get_config
    from .pipeline import PublishPipeline, publish_request

    if not spu and not publish_all:
        rprint("[red]Pass --spu at least once, or --all[/red]")
        raise typer.Exit(code=2)
    pipeline = PublishPipeline(get_config())
    status_code, body = publish_request(pipeline, {"spus": spu or [], "publishAll": publish_all})
    if status_code != 200:
        rprint(f"[red]{body['error']}[/red]")
        for issue in body.get("issues", []):
            rprint(f"[yellow]- {json.dumps(issue, ensure_ascii=False)}[/yellow]")
        raise typer.Exit(code=1)
    rprint(json.dumps(body, ensure_ascii=False, indent=2))
    failed = [m["spu"] for m in body["moved"] if not m["moved"]]
    if failed:
        rprint(f"[yellow]Folders not moved for: {', '.join(failed)}[/yellow]")


@app.command("drafts")
def drafts(limit: int = typer.Option(50, "--limit")) -> None:
    """List pending drafts."""
    from .config import get_config
    from .store import DraftStore

    store = DraftStore(get_config().db_path)
    products = store.fetch_draft_products()
    variants = store.fetch_draft_variants([p.spu for p in products])
    counts: dict[str, int] = {}
    for v in variants:
        counts[v.spu or ""] = counts.get(v.spu or "", 0) + 1
    rows = [
        {"spu": p.spu, "title": p.title, "image_folder": p.image_folder, "variants": counts.get(p.spu, 0)}
        for p in products[:limit]
    ]
    rprint({"count": len(products), "drafts": rows})


@app.command("steps")
def steps(run_id: str = typer.Option(..., "--run", help="Run id from the publish response")) -> None:
    """Show the step log of a publish run."""
    from .config import get_config
    from .store import DraftStore

    store = DraftStore(get_config().db_path)
    records = store.fetch_steps(run_id)
    if not records:
        rprint(f"[yellow]No steps recorded for run {run_id}[/yellow]")
        raise typer.Exit(code=1)
    for step in records:
        mark = "[green]ok[/green]" if step.ok else "[red]failed[/red]"
        detail = f" ({step.detail})" if step.detail else ""
        rprint(f"{step.recorded_at} {step.stage:<10} {step.spu or '-':<16} {mark}{detail}")


@app.command("serve")
def serve(host: str = typer.Option("127.0.0.1", "--host"), port: int = typer.Option(8000, "--port")) -> None:
    import uvicorn
    uvicorn.run("draftpub.api:app", host=host, port=port)
