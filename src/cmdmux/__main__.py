"""cmdmux entry point.

Supports: python -m cmdmux
"""

from .cli import main

if __name__ == "__main__":
    main()
