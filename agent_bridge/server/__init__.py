"""HTTP layer: upgrade acceptor, health, webhook and bot control routes."""
