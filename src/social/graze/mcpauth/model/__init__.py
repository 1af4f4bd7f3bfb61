"""
Database Models

This package defines the database models for the MCPAuth service using SQLAlchemy ORM.
These models are the persistent state of the authorization subsystem.

Key Models:
- base.py: Base SQLAlchemy model with common type definitions and time helpers
- oauth.py: OAuth clients, authorization codes, access token ledger and refresh tokens
- user_token.py: Static user API tokens (stored as SHA-256 hashes)
- health.py: Health monitoring gauge

The data models follow these relationships:
- OAuthClient: A registered application, identified by client_id
- AuthorizationCode: Single-use code issued to a client on behalf of a user
- AccessToken: Revocation ledger entry for an issued JWT, keyed by jti
- RefreshToken: Opaque refresh credential linked to the access token it was issued with
- UserToken: Long lived static token owned by a user

Each model includes:
- Creation and expiration timestamps
- A revocation flag or hashed credential, never a plaintext secret

Mutations that must be atomic (code redemption, refresh rotation) are expressed as
conditional UPDATE ... RETURNING statements so they are safe across processes.
"""
