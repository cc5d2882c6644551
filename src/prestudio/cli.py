"""CLI entry point for prestudio."""

import asyncio
import logging
import typer
from pathlib import Path
from typing import Optional
from enum import Enum

from . import __version__
from .actions import BillableAction, EditImage, GenerateAudio, GenerateImage, GenerateVideoPrompt
from .config import config
from .cost import format_currency, percent_delta
from .errors import StudioError
from .gate import CostGate, GateOutcome, PendingConfirmation
from .ledger import versions as image_versions
from .models import Scene
from .session import ProjectSession
from .storage import archive_name, export_archive, read_sheet

app = typer.Typer(
    name="prestudio",
    help="AI video pre-production: scenes, characters, assets and cost tracking",
    no_args_is_help=True
)

PROJECT_OPTION = typer.Option(
    Path("project.json"),
    "--project",
    "-p",
    help="Path to the project JSON file",
    file_okay=True,
    dir_okay=False
)
SCENE_OPTION = typer.Option(
    ...,
    "--scene",
    "-s",
    help="Scene position (1-based)",
    min=1
)
VERBOSE_OPTION = typer.Option(
    False,
    "--verbose",
    "-v",
    help="Enable verbose logging"
)


class ExportKind(str, Enum):
    """Artifact kinds that can be exported."""
    IMAGE = "image"
    AUDIO = "audio"


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"prestudio version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit"
    )
) -> None:
    """prestudio - Plan AI-generated videos and keep track of what they cost."""
    pass


def _open(project: Path) -> ProjectSession:
    """Load a project file into a new session, exiting on failure."""
    if not project.exists():
        typer.echo(f"❌ No project found at {project}")
        typer.echo("   Run 'prestudio new' to create one")
        raise typer.Exit(1)

    session = ProjectSession()
    try:
        session.load_path(project)
    except StudioError as e:
        typer.echo(f"❌ Error loading project: {e}")
        raise typer.Exit(1)
    return session


def _write(session: ProjectSession, project: Path) -> None:
    try:
        project.parent.mkdir(parents=True, exist_ok=True)
        project.write_bytes(session.save_bytes())
    except OSError as e:
        typer.echo(f"❌ Error saving project: {e}")
        raise typer.Exit(1)


def _scene_at(session: ProjectSession, position: int) -> Scene:
    scenes = session.present.scenes
    if position > len(scenes):
        typer.echo(f"❌ Scene {position} does not exist (project has {len(scenes)} scenes)")
        raise typer.Exit(1)
    return scenes[position - 1]


async def _confirm_cost(pending: PendingConfirmation) -> bool:
    estimate = pending.estimate
    typer.echo(f"\n💰 {pending.action_name} ({pending.model_name})")
    typer.echo(f"   Input tokens (est.):  {estimate.input_tokens:,}")
    typer.echo(f"   Output tokens (est.): {estimate.output_tokens:,}")
    typer.echo(f"   Estimated cost:       {format_currency(estimate.total_cost)}")
    return typer.confirm("   Run this action?", default=True)


def _run_billable(project: Path, build_action, verbose: bool) -> None:
    """Submit one action through the cost gate and save the project on success."""
    setup_logging(verbose)
    session = _open(project)
    action: BillableAction = build_action(session)

    gate = CostGate(session, confirmer=_confirm_cost)
    result = asyncio.run(gate.submit(action))

    if result.outcome == GateOutcome.CREDENTIAL_REQUIRED:
        typer.echo("❌ GEMINI_API_KEY environment variable not set")
        raise typer.Exit(1)
    if result.outcome == GateOutcome.REJECTED:
        typer.echo(f"❌ {result.error}")
        raise typer.Exit(1)
    if result.outcome == GateOutcome.CANCELLED:
        typer.echo("   Cancelled, nothing was charged")
        raise typer.Exit(0)
    if result.outcome == GateOutcome.FAILED:
        typer.echo(f"❌ {action.name} failed: {result.error}")
        raise typer.Exit(1)

    _write(session, project)
    usage = result.usage
    typer.echo(f"\n✅ {action.name} done")
    typer.echo(
        f"   Actual: {usage.prompt_tokens:,} in / {usage.candidates_tokens:,} out tokens, "
        f"{format_currency(result.actual_cost)} "
        f"({percent_delta(result.estimate.total_cost, result.actual_cost)} vs estimate)"
    )
    typer.echo(f"   Project total: {format_currency(session.present.usage_stats.total_cost)}")


@app.command()
def new(
    name: str = typer.Argument(
        "",
        help="Project name"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Directory for the project file (defaults to the workspace)"
    )
) -> None:
    """Create an empty project with three blank scenes."""
    session = ProjectSession()
    if name:
        session.rename(name)
    try:
        path = session.save(output or config.workspace)
    except OSError as e:
        typer.echo(f"❌ Error saving project: {e}")
        raise typer.Exit(1)
    typer.echo(f"✅ Project created: {path}")


@app.command()
def status(
    project: Path = PROJECT_OPTION
) -> None:
    """Show project status and accumulated cost."""
    session = _open(project)
    doc = session.present
    content = doc.content

    typer.echo(f"📁 Project: {doc.name or '(untitled)'}")
    typer.echo(f"   Voice: {content.selected_voice}")
    if content.style_prompt:
        typer.echo(f"   Style: {content.style_prompt[:60]}")
    typer.echo(f"   Characters: {len(content.characters)}")
    for character in content.characters:
        marker = "⭐" if character.is_default else "  "
        typer.echo(f"   {marker} {character.name} ({len(character.image_references)} refs)")

    typer.echo("\n📽️  Scenes:")
    for i, scene in enumerate(content.scenes, start=1):
        flags = "".join([
            "🖼 " if scene.primary_image else "",
            "🔊 " if scene.audio else "",
            "🎬 " if scene.video_prompt else "",
        ])
        typer.echo(f"   [{i}] {scene.scene_id}: {flags}({len(scene.image_history)} image versions)")
        if scene.script:
            preview = scene.script[:60] + "..." if len(scene.script) > 60 else scene.script
            typer.echo(f"      → {preview}")

    stats = doc.usage_stats
    typer.echo("\n💰 Usage:")
    typer.echo(f"   Input tokens: {stats.total_input_tokens:,}")
    typer.echo(f"   Output tokens: {stats.total_output_tokens:,}")
    typer.echo(f"   Total cost: {format_currency(stats.total_cost)}")


@app.command()
def migrate(
    project: Path = PROJECT_OPTION,
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Where to write the migrated file (defaults to overwriting the input)"
    )
) -> None:
    """Upgrade a project file from an older format."""
    session = _open(project)
    target = output or project
    _write(session, target)
    typer.echo(f"✅ Migrated project written to {target}")


@app.command("generate-image")
def generate_image(
    project: Path = PROJECT_OPTION,
    scene: int = SCENE_OPTION,
    prompt: Optional[str] = typer.Option(
        None,
        "--prompt",
        help="Use this description instead of the scene's own"
    ),
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Generate a new image version for a scene."""
    _run_billable(project, lambda s: GenerateImage(_scene_at(s, scene).id, prompt_override=prompt), verbose)


@app.command("edit-image")
def edit_image(
    instruction: str = typer.Argument(
        ...,
        help="Change to apply to the scene's current image"
    ),
    project: Path = PROJECT_OPTION,
    scene: int = SCENE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Edit the active image of a scene; the result becomes a new version."""
    _run_billable(project, lambda s: EditImage(_scene_at(s, scene).id, instruction), verbose)


@app.command("generate-audio")
def generate_audio(
    project: Path = PROJECT_OPTION,
    scene: int = SCENE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Narrate a scene's script with the project voice."""
    _run_billable(project, lambda s: GenerateAudio(_scene_at(s, scene).id), verbose)


@app.command("video-prompt")
def video_prompt(
    project: Path = PROJECT_OPTION,
    scene: int = SCENE_OPTION,
    verbose: bool = VERBOSE_OPTION,
) -> None:
    """Write a video direction prompt for a scene."""
    _run_billable(project, lambda s: GenerateVideoPrompt(_scene_at(s, scene).id), verbose)


@app.command()
def versions(
    project: Path = PROJECT_OPTION,
    scene: int = SCENE_OPTION,
) -> None:
    """List the image versions recorded for a scene."""
    session = _open(project)
    target = _scene_at(session, scene)
    entries = image_versions(target)
    if not entries:
        typer.echo(f"   Scene {target.scene_id} has no image versions")
        return
    typer.echo(f"🖼  Scene {target.scene_id}: {len(entries)} version(s)")
    for i, entry in enumerate(entries, start=1):
        marker = "▶" if entry == target.primary_image else " "
        typer.echo(f"   {marker} [{i}] {len(entry):,} chars")


@app.command()
def promote(
    version: int = typer.Argument(
        ...,
        help="Version number as listed by 'prestudio versions'",
        min=1
    ),
    project: Path = PROJECT_OPTION,
    scene: int = SCENE_OPTION,
) -> None:
    """Make an earlier image version the active one."""
    session = _open(project)
    target = _scene_at(session, scene)
    entries = image_versions(target)
    if version > len(entries):
        typer.echo(f"❌ Scene {target.scene_id} has only {len(entries)} version(s)")
        raise typer.Exit(1)

    session.promote_image(target.id, entries[version - 1])
    _write(session, project)
    typer.echo(f"✅ Scene {target.scene_id} now uses version {version}")


@app.command()
def export(
    project: Path = PROJECT_OPTION,
    kind: ExportKind = typer.Option(
        ExportKind.IMAGE,
        "--kind",
        "-k",
        help="Artifacts to export"
    ),
    output: Path = typer.Option(
        Path("."),
        "--output",
        "-o",
        help="Directory for the zip archive",
        file_okay=False,
        dir_okay=True
    )
) -> None:
    """Export every scene's image or audio into a zip archive."""
    session = _open(project)
    doc = session.present
    try:
        archive = export_archive(doc, kind.value)
    except ValueError as e:
        typer.echo(f"❌ Error exporting: {e}")
        raise typer.Exit(1)

    if archive is None:
        typer.echo(f"⚠️  No scenes have {kind.value} yet")
        raise typer.Exit(0)

    output.mkdir(parents=True, exist_ok=True)
    path = output / archive_name(doc, kind.value)
    path.write_bytes(archive)
    typer.echo(f"✅ Archive saved: {path}")


@app.command("apply-script")
def apply_script(
    source: Path = typer.Argument(
        ...,
        help="Text file with one line per scene",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    project: Path = PROJECT_OPTION,
    column: str = typer.Option(
        "script",
        "--column",
        "-c",
        help="Scene field to fill: 'script' or 'visual_description'"
    ),
) -> None:
    """Fill scenes from a text file, adding scenes as needed."""
    session = _open(project)
    lines = [line.strip() for line in source.read_text(encoding="utf-8").splitlines() if line.strip()]
    try:
        session.apply_script_lines(lines, column)
    except StudioError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)
    _write(session, project)
    typer.echo(f"✅ Applied {len(lines)} line(s) to {column}")


@app.command("import-sheet")
def import_sheet(
    source: Path = typer.Argument(
        ...,
        help="Spreadsheet (.xlsx, .xls or .csv); first row is a header",
        exists=True,
        file_okay=True,
        dir_okay=False
    ),
    project: Path = PROJECT_OPTION,
) -> None:
    """Replace the scene list with rows from a spreadsheet (A: label, C: script, E: description)."""
    session = _open(project)
    try:
        rows = read_sheet(source)
    except (ValueError, OSError) as e:
        typer.echo(f"❌ Error reading sheet: {e}")
        raise typer.Exit(1)

    try:
        session.import_scenes(rows)
    except StudioError as e:
        typer.echo(f"❌ {e}")
        raise typer.Exit(1)
    _write(session, project)
    typer.echo(f"✅ Imported {len(session.present.scenes)} scene(s) from {source.name}")


if __name__ == "__main__":
    app()
