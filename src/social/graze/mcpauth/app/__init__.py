"""
MCP Authorization Application Layer

This package implements the web application layer: the OAuth 2.1 authorization
server endpoints, discovery documents, and an example protected resource, served with
aiohttp.

Key Components:
- server.py: Web server configuration, middleware and startup wiring
- config.py: Configuration management using Pydantic settings, and AppKeys
- handlers/: Request handlers for the endpoints below
- tasks.py: Background tasks for expiry cleanup and health monitoring
- metrics.py: Metrics client abstraction
- cors.py: CORS handling for cross-origin requests
- cli.py: Server entry point
- util/: Administrative command line utilities

The application uses several middleware layers:
- Statsd middleware for metrics collection
- Sentry middleware for error reporting

It provides the following main endpoints:
- Authorization server endpoints (/oauth/*)
- Discovery documents (/.well-known/*)
- Internal API endpoints (/internal/*)
"""
