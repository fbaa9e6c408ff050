"""``python -m slm_automation`` dispatches to the typer command line."""
from .cli import run

if __name__ == "__main__":
    run()
