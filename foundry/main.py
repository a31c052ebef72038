from foundry.api.main import app

__all__ = ["app"]
