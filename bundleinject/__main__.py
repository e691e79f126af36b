"""
CLI entry point, when used as a module: `python -m bundleinject`.

Useful for debugging in the IDEs (use the start-mode "Module", module "bundleinject").
"""
from bundleinject import cli

if __name__ == '__main__':
    cli.main()
