"""
CLI entry point, when used as a module: `python -m trustee_operator`.

Useful for debugging in the IDEs (use the start-mode "Module", module "trustee_operator").
"""
from trustee_operator import cli

if __name__ == '__main__':
    cli.main()
