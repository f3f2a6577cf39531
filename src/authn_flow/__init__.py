"""authn-flow: client for server-driven, multi-step OAuth2/OIDC sign-in flows.

Walks the authorize -> authenticate -> token exchange sequence dictated by
the authorization server, builds authenticator payloads (password, TOTP,
federated), and keeps the resulting session in secure storage.
"""

__version__ = "0.3.0"
