"""
Command-line interface for mdscope.

Built on click, with the same `--tree` option on every group.

Examples
--------
A three-slice, two-position acquisition on the mock scope:
```bash
$ mdscope acquire -n mock --slices 3 --positions 2
```

Describing a dataset from its metadata journal:
```bash
$ mdscope info ./mock_output/UVM-2026-01-01-12-00-00
```

CLI Tree
--------

```
$ mdscope --tree
cli
└── acquire
└── config
    └── install
    └── list
└── info
```
"""

from .acquire import acquire
from .base import cli, tree_option

cli.add_command(acquire)

__all__ = ["cli", "tree_option"]
