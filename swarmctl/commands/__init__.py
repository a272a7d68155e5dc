from . import bootstrap, config, inventory, status

__all__ = ['bootstrap', 'config', 'inventory', 'status']
