"""CLI interface for ClimateVision."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .config import ClimateVisionConfig
from .credentials import FAL_API_KEY, GEMINI_API_KEY, CredentialStore, mask_secret
from .errors import ClimateVisionError
from .fallback import save_default_fallbacks
from .media import get_media_type
from .prompts import Category, get_suggestions
from .reports import SEVERITIES, VIOLATION_TYPES, ReportForm
from .videogen import VIDEO_MODES

console = Console()
app = typer.Typer(
    name="climatevision",
    help="Visualize climate effects and solutions on your own photos.",
    add_completion=False,
)


def _load_context():
    from .session import AppContext

    return AppContext.create(ClimateVisionConfig.load())


def _fail(error: ClimateVisionError) -> None:
    console.print(f"[red]Error:[/] {error}")
    raise typer.Exit(1)


@app.command()
def effect(
    image: Annotated[
        Path,
        typer.Argument(help="Path to a nature photo", exists=True, dir_okay=False),
    ],
    description: Annotated[
        str,
        typer.Argument(help="Climate effect or solution to visualize"),
    ],
    category: Annotated[
        str,
        typer.Option("--category", "-c", help="effect or solution"),
    ] = "effect",
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Where to write the generated image"),
    ] = None,
) -> None:
    """
    Transform a photo with a climate effect or solution.
    """
    from .imagegen import generate_climate_effect

    context = _load_context()
    try:
        Category.parse(category)
    except ValueError:
        console.print(f"[red]Unknown category:[/] {category}")
        raise typer.Exit(1) from None

    with console.status("Generating climate impact..."):
        try:
            result = generate_climate_effect(
                image.read_bytes(),
                get_media_type(image),
                description,
                context.config,
                api_key=context.gemini_key() or None,
            )
        except ClimateVisionError as e:
            _fail(e)

    suffix = ".jpg" if result.mime_type == "image/jpeg" else ".png"
    output = output or image.with_name(f"{image.stem}-climate-effect{suffix}")
    output.write_bytes(result.data)
    console.print(f"[green]Climate impact visualization saved:[/] {output}")


@app.command()
def video(
    image: Annotated[
        str,
        typer.Argument(help="Path to an image file or a public image URL"),
    ],
    prompt: Annotated[
        str,
        typer.Argument(help="What should happen in the video"),
    ],
    mode: Annotated[
        str,
        typer.Option("--mode", "-m", help="auto, direct, or relay"),
    ] = "",
) -> None:
    """
    Turn an image into a short video.
    """
    if mode and mode.strip().lower() not in VIDEO_MODES:
        console.print(f"[red]Unknown mode:[/] {mode} (use {', '.join(VIDEO_MODES)})")
        raise typer.Exit(1)

    context = _load_context()
    if mode:
        context.config.video_mode = mode.strip().lower()

    source: bytes | str = image
    mime_type = None
    path = Path(image)
    if not image.startswith(("http://", "https://")):
        if not path.is_file():
            console.print(f"[red]Image not found:[/] {image}")
            raise typer.Exit(1)
        source = path.read_bytes()
        mime_type = get_media_type(path)

    def show_status(state: str, _payload: dict) -> None:
        console.print(f"[dim]  provider status: {state}[/]")

    with console.status("Generating video (this can take a couple of minutes)..."):
        try:
            result = context.video_client().generate(
                source, prompt, mime_type=mime_type, on_status=show_status
            )
        except ClimateVisionError as e:
            _fail(e)

    title = "[bold]Fallback video[/]" if result.fallback else "[bold]Video ready[/]"
    console.print(Panel(result.url, title=title, border_style="green"))


@app.command()
def report(
    violation_type: Annotated[
        str, typer.Option("--type", help=f"One of: {', '.join(VIOLATION_TYPES)}")
    ] = "",
    severity: Annotated[str, typer.Option("--severity", help=f"One of: {', '.join(SEVERITIES)}")] = "",
    location: Annotated[str, typer.Option("--location")] = "",
    incident_date: Annotated[str, typer.Option("--date", help="YYYY-MM-DD")] = "",
    incident_time: Annotated[str, typer.Option("--time", help="HH:MM")] = "",
    description: Annotated[str, typer.Option("--description", "-d")] = "",
    pollutant: Annotated[str, typer.Option("--pollutant")] = "",
    additional_info: Annotated[str, typer.Option("--info")] = "",
    reporter_name: Annotated[str, typer.Option("--name")] = "",
    reporter_email: Annotated[str, typer.Option("--email")] = "",
    reporter_phone: Annotated[str, typer.Option("--phone")] = "",
    image: Annotated[
        Path | None,
        typer.Option("--image", help="Evidence photo", exists=True, dir_okay=False),
    ] = None,
    draft: Annotated[bool, typer.Option("--draft", help="Save as draft instead of submitting")] = False,
    draft_id: Annotated[
        str | None,
        typer.Option("--draft-id", help="Id of a saved draft to update or submit"),
    ] = None,
) -> None:
    """
    File an EcoVoice environmental violation report.

    Pass --draft-id to update an earlier draft, or to submit it. Without
    SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY, reports live in memory for
    this command only, so drafts cannot be resumed and `reports` lists
    nothing.
    """
    context = _load_context()
    form = ReportForm(
        violation_type=violation_type,
        severity=severity,
        pollutant=pollutant,
        location=location,
        incident_date=incident_date,
        incident_time=incident_time,
        description=description,
        additional_info=additional_info,
        reporter_name=reporter_name,
        reporter_email=reporter_email,
        reporter_phone=reporter_phone,
        draft_id=draft_id or None,
    )
    if not context.config.has_backend:
        console.print("[yellow]No backend configured - this report is kept in memory only[/]")
    evidence = (image.read_bytes(), get_media_type(image)) if image else None

    flow = context.report_flow()
    try:
        saved = flow.save_draft(form, evidence) if draft else flow.submit(form, evidence)
    except ClimateVisionError as e:
        _fail(e)

    for note in reversed(context.notifications.items):
        style = {"warning": "yellow", "error": "red"}.get(note.kind, "green")
        console.print(f"[{style}]{note.message}[/]")
    console.print(f"[dim]Report id: {saved.id} ({saved.status})[/]")


@app.command()
def reports() -> None:
    """
    List submitted reports, newest first.

    Reads the hosted reports table; without a configured backend the list is empty.
    """
    context = _load_context()
    try:
        rows = context.report_flow().list_submitted()
    except ClimateVisionError as e:
        console.print("[red]Failed to load reports[/]")
        _fail(e)

    if not rows:
        console.print("[dim]No reports submitted yet[/]")
        return

    table = Table(title="Submitted Reports")
    table.add_column("Created", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Severity")
    table.add_column("Location")
    table.add_column("Reporter")
    for r in rows:
        table.add_row(r.created_at[:16], r.violation_type, r.severity, r.location, r.reporter_name)
    console.print(table)


@app.command()
def suggestions(
    category: Annotated[str, typer.Argument(help="effect or solution")] = "effect",
) -> None:
    """
    Show quick-pick descriptions.
    """
    try:
        parsed = Category.parse(category)
    except ValueError:
        console.print(f"[red]Unknown category:[/] {category}")
        raise typer.Exit(1) from None
    for item in get_suggestions(parsed):
        console.print(f"  • {item}")


@app.command()
def serve(
    host: Annotated[str, typer.Option("--host")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p")] = 8000,
    relay_only: Annotated[
        bool,
        typer.Option("--relay-only", help="Serve only the video relay function"),
    ] = False,
) -> None:
    """
    Run the HTTP service.
    """
    import uvicorn

    context = _load_context()
    if relay_only:
        from .relay import create_relay_app
        from .storage import storage_from_config

        web_app = create_relay_app(context.config, storage_from_config(context.config))
    else:
        from .server import create_app

        web_app = create_app(context)

    console.print(f"[green]ClimateVision listening on[/] http://{host}:{port}")
    try:
        uvicorn.run(web_app, host=host, port=port)
    finally:
        context.close()


@app.command()
def config(
    show: Annotated[
        bool,
        typer.Option("--show", help="Show current configuration"),
    ] = False,
    init: Annotated[
        bool,
        typer.Option("--init", help="Create default config file"),
    ] = False,
    init_fallbacks: Annotated[
        bool,
        typer.Option("--init-fallbacks", help="Create fallbacks.yaml in current directory"),
    ] = False,
    set_fal_key: Annotated[
        str | None,
        typer.Option("--set-fal-key", help="Store your FAL API key locally"),
    ] = None,
    set_gemini_key: Annotated[
        str | None,
        typer.Option("--set-gemini-key", help="Store your Gemini API key locally"),
    ] = None,
) -> None:
    """
    Manage ClimateVision configuration.

    Config is stored in ~/.config/climatevision/config.env, user keys in
    ~/.config/climatevision/credentials.json
    """
    cfg = ClimateVisionConfig.load()
    credentials = CredentialStore(cfg.get_credentials_path())

    if set_fal_key or set_gemini_key:
        if set_fal_key:
            credentials.set(FAL_API_KEY, set_fal_key)
        if set_gemini_key:
            credentials.set(GEMINI_API_KEY, set_gemini_key)
        console.print(f"[green]API key saved to:[/] {credentials.path}")
        return

    if init:
        path = cfg.save_default_config()
        console.print(f"[green]Config created:[/] {path}")
        console.print("[dim]Edit this file to customize settings[/]")
        return

    if init_fallbacks:
        fallbacks_path = Path.cwd() / "fallbacks.yaml"
        if fallbacks_path.exists():
            console.print(f"[yellow]Fallbacks file already exists:[/] {fallbacks_path}")
            return
        save_default_fallbacks(fallbacks_path)
        return

    if show:
        console.print("[bold]Current Configuration:[/]\n")
        console.print(f"Gemini Key: {mask_secret(credentials.get(GEMINI_API_KEY) or cfg.gemini_api_key)}")
        console.print(f"FAL Key: {mask_secret(credentials.get(FAL_API_KEY) or cfg.fal_api_key)}")
        console.print(f"Image Model: {cfg.image_model}")
        console.print(f"Video Model: {cfg.video_model}")
        console.print(f"Video: {cfg.video_duration}, {cfg.video_resolution}, audio={cfg.generate_audio}")
        console.print(f"Video Timeout: {cfg.video_timeout:g}s")
        console.print(f"Relay URL: {cfg.relay_url or '[dim]not set[/]'}")
        console.print(f"Backend: {cfg.supabase_url or '[dim]local[/]'}")
        return

    console.print(
        "Use --show to view config, --init to create, --init-fallbacks for canned videos, "
        "or --set-fal-key / --set-gemini-key to store API keys"
    )


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"[bold]ClimateVision v{__version__}[/]")
    console.print("[dim]Climate impact visualization and EcoVoice reporting[/]")


if __name__ == "__main__":
    app()
