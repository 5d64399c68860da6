from memory_mcp.server import main

main()
