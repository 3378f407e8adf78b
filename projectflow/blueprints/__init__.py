"""HTTP JSON API blueprints."""
