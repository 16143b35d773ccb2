from mcp_session.cli import main

main()
