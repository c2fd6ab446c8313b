"""Auth module — bearer-token principal resolution and role checks."""
