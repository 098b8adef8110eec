"""Entry point for running scalecron as a module: python -m scalecron"""

from scalecron.cli.commands import app

if __name__ == "__main__":
    app()
