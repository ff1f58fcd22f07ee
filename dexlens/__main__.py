"""
DexLens Module Entry Point
===========================

Allows running the DexLens CLI via: python -m dexlens
"""

from dexlens.cli import main

if __name__ == "__main__":
    main()
