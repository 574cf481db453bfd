"""
Command-line client for the chorus_service HTTP API.
"""
import json
import os
from typing import Optional

import requests
import typer
from dotenv import load_dotenv
from prompt_toolkit import prompt as ptk_prompt
from prompt_toolkit.formatted_text import FormattedText
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

load_dotenv()

API_BASE_URL = os.environ.get("CHORUS_API_URL", "http://127.0.0.1:8080/api/v1")

console = Console()
app = typer.Typer(
    name="chorus-cli",
    help="Chat with chorus_service and inspect its tools.",
    add_completion=False,
)


def _fail(message: str, exc: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    console.print("Is the service running? [bold]python -m chorus_service.app[/bold]")
    console.print(f"Details: {exc}")
    raise typer.Exit(1)


def create_conversation() -> str:
    try:
        response = requests.post(f"{API_BASE_URL}/conversations", json={})
        response.raise_for_status()
    except requests.RequestException as e:
        _fail(f"Could not create a conversation at {API_BASE_URL}.", e)
    conversation_id = response.json()["id"]
    console.print(f"New conversation: [yellow]{conversation_id}[/yellow]")
    return conversation_id


def cancel_conversation(conversation_id: str) -> int:
    try:
        response = requests.post(f"{API_BASE_URL}/chat/{conversation_id}/cancel")
        response.raise_for_status()
    except requests.RequestException as e:
        console.print(f"[bold red]Cancel failed:[/bold red] {e}")
        return 0
    return response.json().get("cancelled", 0)


def render_event(event: dict, debug: bool = False) -> None:
    """Print one NDJSON chat event."""
    evt_type = event.get("type")
    data = event.get("data", {})
    if debug:
        console.print(f"[dim]{event}[/dim]")

    if evt_type == "text":
        if data.get("replace"):
            console.print()
            console.print(data.get("content", ""), end="", style="green", markup=False)
        else:
            console.print(data.get("delta", ""), end="", style="green", markup=False)
    elif evt_type == "round_started":
        console.print()
        console.rule(f"[dim]tool round {data.get('round')}[/dim]")
    elif evt_type == "tool_started":
        console.print(Panel(Text(f"{data.get('name')}({data.get('arguments') or ''})", style="yellow"),
                            title="Tool call", title_align="left", border_style="yellow"))
    elif evt_type == "tool_completed":
        console.print(Panel(Text(json.dumps(data.get("result"), indent=2, default=str)),
                            title=f"Tool result ({data.get('name')})", title_align="left", border_style="green"))
    elif evt_type == "tool_error":
        console.print(Panel(Text(str(data.get("error")), style="red"),
                            title=f"Tool error ({data.get('name')})", title_align="left", border_style="red"))
    elif evt_type == "cancelled":
        console.print("\n[yellow]Response cancelled.[/yellow]")
    elif evt_type == "error":
        console.print(f"\n[bold red]Error:[/bold red] {data.get('message')}")
    elif evt_type == "done":
        console.print()


def stream_turn(conversation_id: str, prompt: str, model: Optional[str], debug: bool) -> None:
    body = {"prompt": prompt, "conversation_id": conversation_id, "model": model}
    try:
        with requests.post(f"{API_BASE_URL}/chat/stream", json=body, stream=True) as response:
            response.raise_for_status()
            for line in response.iter_lines():
                if not line:
                    continue
                try:
                    event = json.loads(line)
                except json.JSONDecodeError:
                    if debug:
                        console.print(f"[red]Bad event line: {line!r}[/red]")
                    continue
                render_event(event, debug)
    except KeyboardInterrupt:
        n = cancel_conversation(conversation_id)
        console.print(f"\n[yellow]Cancelled {n} stream(s).[/yellow]")
    except requests.RequestException as e:
        console.print(f"[bold red]Request failed:[/bold red] {e}")


@app.command()
def tools():
    """List the tools the service can call."""
    try:
        response = requests.get(f"{API_BASE_URL}/tools")
        response.raise_for_status()
    except requests.RequestException as e:
        _fail("Could not list tools.", e)

    table = Table(title="Tools", border_style="blue")
    table.add_column("Name", style="bold cyan")
    table.add_column("Description")
    table.add_column("Parameters", style="dim")
    for tool in response.json():
        props = (tool.get("inputSchema") or {}).get("properties", {})
        table.add_row(tool.get("name", ""), tool.get("description", ""), ", ".join(props))
    console.print(table)


@app.command()
def cancel(conversation_id: str = typer.Argument(..., help="Conversation whose streams to cancel.")):
    """Cancel any running response in a conversation."""
    n = cancel_conversation(conversation_id)
    console.print(f"Cancelled {n} stream(s).")


@app.command()
def chat(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model name; the service default if omitted."),
    conversation_id: Optional[str] = typer.Option(None, "--conversation", "-c", help="Resume a conversation."),
    debug: bool = typer.Option(False, "--debug", help="Print raw events."),
):
    """Interactive chat. Ctrl+C cancels the current response; \\exit quits."""
    console.print(Panel.fit("[bold blue]chorus chat[/bold blue]\nType [bold cyan]\\exit[/bold cyan] to quit.",
                            style="bold blue"))
    conversation_id = conversation_id or create_conversation()

    while True:
        try:
            user_prompt = ptk_prompt(FormattedText([("bold cyan", "You "), ("", "(Alt+Enter for newline)\n")]),
                                     multiline=True)
        except (EOFError, KeyboardInterrupt):
            break
        if user_prompt.strip().lower() in ("\\exit", "\\quit"):
            break
        if not user_prompt.strip():
            continue
        stream_turn(conversation_id, user_prompt, model, debug)
        console.rule()
    console.print("Goodbye!")


if __name__ == "__main__":
    app()
