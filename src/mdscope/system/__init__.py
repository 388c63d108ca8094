"""
Scope configuration and the `ScopeSystem` that runs acquisitions.

Examples
--------
```python
from mdscope.system import ScopeSystem

system = ScopeSystem("mock")
system.startup()
store = system.acquire(plan)
system.packdown()
```

See Also
--------
mdscope.system.sysconfig : INI configuration files
"""

from .base_config import ConfigVersion, ScopeConfig
from .presets import load_presets, save_presets
from .sysconfig import (
    create_default_config_file,
    install_scope_config,
    list_available_scopes,
    load_scope_config,
    validate_scope_config,
)
from .system import ScopeSystem

__all__ = [
    "ConfigVersion",
    "ScopeConfig",
    "load_presets",
    "save_presets",
    "create_default_config_file",
    "install_scope_config",
    "list_available_scopes",
    "load_scope_config",
    "validate_scope_config",
    "ScopeSystem",
]
