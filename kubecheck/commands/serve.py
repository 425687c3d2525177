import typer


def serve(
    host: str = typer.Option("127.0.0.1", help="Address to bind"),
    port: int = typer.Option(8080, help="Port to listen on"),
):
    """Serve health checks over HTTP."""
    import uvicorn

    print(f"🚀 Serving kubecheck API on http://{host}:{port}")
    uvicorn.run("kubecheck.api.main:app", host=host, port=port)
