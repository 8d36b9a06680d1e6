"""Serve command implementation."""

from ssoflow.display import console, print_error, print_info


def serve_command(host: str, port: int) -> None:
    """Start the ssoflow web server.

    This function contains the business logic for the serve command.
    """
    from ssoflow.server import run_server

    print_info(f"Starting ssoflow server on http://{host}:{port}")
    console.print()
    console.print("[dim]Endpoints:[/]")
    console.print(f"  GET  http://{host}:{port}/")
    console.print(f"  GET  http://{host}:{port}/api/auth/<provider>")
    console.print(f"  GET  http://{host}:{port}/api/auth/session")
    console.print(f"  GET  http://{host}:{port}/api/workflow/steps/<step_id>/stream")
    console.print()

    try:
        run_server(host=host, port=port)
    except KeyboardInterrupt:
        pass
    except Exception as e:
        print_error(f"Server failed: {e}")
        raise SystemExit(1) from None
