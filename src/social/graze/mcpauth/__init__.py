"""
MCPAuth - OAuth 2.1 Authorization Server for MCP endpoints

This package implements the authorization subsystem that sits in front of an AI-agent
protocol (MCP) endpoint. It issues and validates the credentials that agents present and
turns them into an immutable principal that a tool dispatcher can check scopes against.

Key Components:
- app: Web application layer (aiohttp) with the OAuth, discovery and internal endpoints
- oauth: Authorization server core: scopes, client/code/token stores, PKCE, JWT and grant flows
- auth: Request authentication: the static user-token store, user provider and auth manager
- model: Database models for clients, codes, token ledgers and static user tokens

Architecture Overview:
1. Authorization Code Flow:
   - A client sends the resource owner to the authorization endpoint
   - The owner approves the requested scopes, filtered by their roles
   - A single-use, short-lived code (optionally PKCE bound) is issued
   - The client exchanges the code for an RS256 signed JWT and a refresh token

2. Refresh Rotation:
   - Every refresh revokes the old access and refresh token and mints a new pair
   - Replaying an old refresh token always fails

3. Resource Authentication:
   - Bearer JWTs are verified statelessly against the public key, then checked against
     the revocation ledger
   - Static user tokens are looked up by SHA-256 hash and mapped to scopes by role

The service follows OAuth 2.1, RFC 7636 (PKCE), RFC 8414 (authorization server metadata),
RFC 9728 (protected resource metadata) and RFC 7009 (token revocation).
"""
