"""Session-based authentication for upload endpoints.

The login session is owned by the GraphQL server: a server-side session
store keyed by the signed ``sessionId`` cookie. This package only reads the
user identifier out of it.

Services:
    - StoreSessionAuthenticator: verifies the cookie and looks the session up
      in the session store (default).
    - SessionAuthenticator: reads a self-contained session cookie decoded by
      Starlette's ``SessionMiddleware``.
"""
