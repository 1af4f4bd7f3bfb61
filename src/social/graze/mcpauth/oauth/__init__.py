"""
OAuth 2.1 authorization server core.

Each module owns one concern: `scopes` (vocabulary and role mapping), `clients`,
`codes` and `tokens` (persistence), `pkce`, `jwt` (RS256 signing and validation),
`errors` (the wire error taxonomy) and `grants`, which wires them together into the
authorization_code and refresh_token flows.
"""
