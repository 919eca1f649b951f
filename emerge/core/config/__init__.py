"""
Configuration subsystem.

- **config.py**: static settings from environment variables (.env support)
- **manager.py**: balance values from packaged YAML defaults with overrides

Usage
-----
```python
from emerge.core.config import Config, ConfigManager

Config.load()
db_url = Config.DATABASE_URL

balance = ConfigManager.from_defaults()
base_xp = balance.get("progression.xp.base.habit_completion", 10)
```
"""

from emerge.core.config.config import Config, Environment
from emerge.core.config.manager import ConfigManager

__all__ = ["Config", "Environment", "ConfigManager"]
