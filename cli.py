# cli.py
import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from backend.app import build_platform
from backend.core.config import load_settings
from backend.core.contracts import ChatMessage, Hooks

app = typer.Typer(name="promptloom", help="promptloom context engine command-line interface")


async def _boot(debug: bool = False):
    """Load every plugin and run async initialisation, as the app lifespan does."""
    settings = load_settings()
    if debug:
        settings.llm.debug_mode = True
    container, hook_manager = build_platform(settings)
    await hook_manager.trigger(Hooks.SERVICES_POST_REGISTER)
    return container


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h"),
    port: int = typer.Option(8000, "--port", "-p"),
    reload: bool = typer.Option(False, "--reload"),
):
    """Run the HTTP API with uvicorn."""
    import uvicorn
    uvicorn.run("backend.main:app", host=host, port=port, reload=reload)


@app.command("plugins")
def list_plugins():
    """List the plugins that load, in load order."""
    container = asyncio.run(_boot())
    for manifest in container.resolve("plugin_manifests"):
        typer.echo(f"{manifest.get('priority', 100):>5}  {manifest.get('name')}  {manifest.get('description', '')}")


@app.command("tokens")
def count_tokens(
    text: str = typer.Argument(..., help="Text to measure."),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model id used to pick a tokenizer."),
):
    """Count tokens the way the budget allocator does."""
    from plugins.core_budget.tokenizers import TokenizerRegistry

    result = TokenizerRegistry().count_tokens(text, model)
    suffix = " (approximate)" if result.is_approximate else ""
    typer.echo(f"{result.count} tokens via {result.tokenizer_name}{suffix}")


@app.command("preview")
def preview(request_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="A turn request as JSON.")):
    """Print the assembled prompt for a turn request without calling a model."""
    from plugins.core_api.models import ContextPreview
    from plugins.core_prompt.models import TurnRequest

    try:
        request = TurnRequest.model_validate_json(request_file.read_text(encoding="utf-8"))
    except ValueError as e:
        typer.secho(f"Invalid turn request: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    async def _run():
        container = await _boot()
        return await container.resolve("chat_pipeline").prepare(request)

    prepared = asyncio.run(_run())
    typer.echo(json.dumps(ContextPreview.from_prepared(prepared).model_dump(mode="json"), indent=2, ensure_ascii=False))


@app.command("chat")
def chat(
    message: str = typer.Argument(..., help="The user message."),
    system: Optional[str] = typer.Option(None, "--system", "-s", help="Override the system prompt."),
    provider: Optional[str] = typer.Option(None, "--provider", help="Provider id; defaults to the configured one."),
    debug: bool = typer.Option(False, "--debug", help="Use the mock provider."),
):
    """Run one turn and stream the reply to stdout."""
    from plugins.core_llm.contracts import StreamChunkType
    from plugins.core_prompt.models import TurnRequest

    request = TurnRequest(
        messages=[ChatMessage(role="user", content=message)],
        system_prompt=system,
        provider_id=provider,
    )

    async def _run() -> Optional[str]:
        container = await _boot(debug)
        async for chunk in container.resolve("chat_pipeline").stream(request):
            if chunk.type == StreamChunkType.TOKEN:
                typer.echo(chunk.value, nl=False)
            elif chunk.type == StreamChunkType.ERROR:
                return chunk.message
        return None

    error = asyncio.run(_run())
    typer.echo("")
    if error:
        typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
