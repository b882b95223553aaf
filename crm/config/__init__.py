from crm.config.settings import settings

__all__ = ["settings"]
