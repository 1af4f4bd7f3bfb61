"""
Resource-side authentication.

`manager` turns an inbound request's credentials into an `Authenticated` or `Rejected`
result, `user_tokens` stores hashed static API tokens, and `users` defines the user and
role provider the authorization core consumes.
"""
