from opendots.config.settings import settings

__all__ = ["settings"]
