"""MCP tool and HTTP route registration for the project hosting server"""
