"""Entry point for the personal-notes MCP server."""

from personal_notes.server import create_server


def main() -> None:
    """Run the personal-notes MCP server."""
    server = create_server()
    server.run(transport="stdio")


if __name__ == "__main__":
    main()
