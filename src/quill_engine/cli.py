"""Typer CLI for Quill-Engine."""

import typer
from rich.console import Console

app = typer.Typer(name="quill", help="Quill-Engine: signature routing and signing service")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Quill-Engine API server."""
    import uvicorn
    from quill_engine.app import create_app

    console.print(f"[bold green]Starting Quill-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command()
def token():
    """Mint a signing token and its lookup hash (offline, no DB required)."""
    from quill_engine.tokens.codec import issue

    raw, lookup_hash = issue()
    console.print(f"[bold]token[/bold] {raw}")
    console.print(f"[bold]hash[/bold]  {lookup_hash}")


@app.command("hash-token")
def hash_token_command(
    value: str = typer.Argument(..., help="Bearer token or API key to hash"),
):
    """Print the lookup hash stored for a token."""
    from quill_engine.tokens.codec import hash_token

    console.print(hash_token(value))


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Quill-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except (httpx.HTTPError, ValueError, KeyError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
